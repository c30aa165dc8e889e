"""ftag command line interface.

Commands load both stores, apply one operation, and write back whichever
store changed. Any FtagError is printed as ``Error: ...`` with exit status 1,
and nothing is written.
"""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from .config import resolve_paths
from .constants import VERSION, WARN_LEVEL_ALL, WARN_LEVEL_URGENT
from .database import Database
from .display import parse_display_args, render_result
from .errors import FtagError
from .fix import FixService, parse_fix_args
from .models import Color
from .query import parse_rule_args, run_query
from .tracking import Tracker, parse_target_args

console = Console(highlight=False)
err_console = Console(stderr=True, highlight=False)

logger = logging.getLogger(__name__)

PASSTHROUGH = {"ignore_unknown_options": True, "allow_extra_args": True}


def _configure_logging(warn_level: int) -> None:
    """Route ftag's loggers to stderr through rich."""
    package_logger = logging.getLogger("ftag")
    for handler in list(package_logger.handlers):
        if isinstance(handler, RichHandler):
            package_logger.removeHandler(handler)
    handler = RichHandler(console=err_console, show_time=False, show_path=False, markup=False)
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.ERROR if warn_level >= WARN_LEVEL_URGENT else logging.WARNING)


def _fail(error: Exception) -> None:
    err_console.print(f"[red]Error:[/red] {escape(str(error))}", soft_wrap=True)
    sys.exit(1)


def _load(ctx: click.Context) -> Database:
    paths = ctx.obj["paths"]
    try:
        return Database.load(paths.tags_file, paths.index_file)
    except FtagError as e:
        _fail(e)


def _persist(db: Database) -> None:
    tags_written, index_written = db.persist()
    if tags_written:
        logger.debug(f"Wrote {db.tags_path}")
    if index_written:
        logger.debug(f"Wrote {db.index_path}")


def _read_stdin() -> str:
    return click.get_text_stream("stdin").read()


@click.group()
@click.option(
    "-st", "--tags-file", "--set-tags-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Tag file to use (default: $FTAG_TAGS_FILE or ~/.config/ftag/main.tags)",
)
@click.option(
    "-sf", "--index-file", "--set-file-index",
    type=click.Path(dir_okay=False, path_type=Path),
    help="File index to use (default: $FTAG_INDEX_FILE or ~/.config/ftag/.fileindex)",
)
@click.option(
    "-w", "--warn", "warn_level",
    type=click.IntRange(min=1),
    default=WARN_LEVEL_ALL,
    show_default=True,
    help="Warning level: 1 shows all warnings, 2 only urgent ones",
)
@click.version_option(VERSION, "-v", "--version", prog_name="ftag")
@click.pass_context
def cli(ctx, tags_file, index_file, warn_level):
    """ftag - tag files by inode without touching them."""
    _configure_logging(warn_level)
    ctx.ensure_object(dict)
    ctx.obj["paths"] = resolve_paths(tags_file, index_file)


# --- search ---


@cli.command(context_settings=PASSTHROUGH)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def search(ctx, args):
    """Search tags and files.

    \b
    Rules run in order; later rules override earlier ones:
      -t/--tag NAME         tags named NAME and their files
      -a/--all NAME         like --tag, plus enabled subtags and their files
      -f/--file NAME        files named NAME (or path, with --search-file-path)
      -i/--inode INUM       the file with inode INUM
      -al/--all-list        everything
    Add 'e' to exclude (-te, --tag-exclude), and 's' or 'r' to match a
    substring or regex (-ts, -ter, --tag-s, --file-exclude-r).
    With no rules, everything is listed.
    """
    options, remaining = parse_display_args(list(args))
    db = _load(ctx)
    try:
        rules, search_path = parse_rule_args(remaining)
        result = run_query(db, rules, search_path=search_path)
    except FtagError as e:
        _fail(e)
    render_result(db, result, options, console)


# --- tag ---


@cli.group()
def tag():
    """Create, delete, edit and apply tags."""


@tag.command("create")
@click.argument("name")
@click.argument("color", required=False)
@click.pass_context
def tag_create(ctx, name, color):
    """Create tag NAME, optionally with a #RRGGBB color."""
    db = _load(ctx)
    try:
        db.create_tag(name, Color.from_hex(color) if color else None)
    except (FtagError, ValueError) as e:
        _fail(e)
    _persist(db)
    console.print(f"Created tag [bold]{escape(name)}[/bold]")


@tag.command("delete")
@click.argument("names", nargs=-1, required=True)
@click.pass_context
def tag_delete(ctx, names):
    """Delete tags, their edges, and their file associations."""
    db = _load(ctx)
    try:
        for name in names:
            db.delete_tag(db.tags.require(name))
    except FtagError as e:
        _fail(e)
    _persist(db)


def _set_enabled(ctx: click.Context, names: tuple[str, ...], enabled: bool) -> None:
    db = _load(ctx)
    try:
        for name in names:
            if not db.set_enabled(db.tags.require(name), enabled):
                logger.warning(f"Tag '{name}' is already {'enabled' if enabled else 'disabled'}")
    except FtagError as e:
        _fail(e)
    _persist(db)


@tag.command("enable")
@click.argument("names", nargs=-1, required=True)
@click.pass_context
def tag_enable(ctx, names):
    """Enable tags."""
    _set_enabled(ctx, names, True)


@tag.command("disable")
@click.argument("names", nargs=-1, required=True)
@click.pass_context
def tag_disable(ctx, names):
    """Disable tags. Disabled tags are skipped by search."""
    _set_enabled(ctx, names, False)


def _edit_tag(db: Database, target, args: list[str]) -> None:
    """Apply tag edit flags in order."""
    tags = db.tags
    i = 0
    while i < len(args):
        flag = args[i]
        i += 1
        if flag in ("-ras", "--remove-all-supers"):
            db.clear_supers(target)
            continue
        if flag in ("-rab", "--remove-all-subs"):
            db.clear_subs(target)
            continue
        if flag in ("-rc", "--remove-color"):
            db.set_color(target, None)
            continue
        if i >= len(args):
            raise FtagError(f"Flag '{flag}' expects a value")
        value = args[i]
        i += 1

        if flag in ("-n", "--rename"):
            db.rename_tag(target, value)
        elif flag in ("-c", "--color"):
            try:
                db.set_color(target, Color.from_hex(value))
            except ValueError as e:
                raise FtagError(str(e)) from e
        elif flag in ("-as", "--add-super", "-rs", "--remove-super", "-ab", "--add-sub", "-rb", "--remove-sub"):
            other = tags.by_name(value)
            if other is None:
                logger.warning(f"Tag '{value}' not found, skipping")
                continue
            adding = flag in ("-as", "--add-super", "-ab", "--add-sub")
            as_super = flag in ("-as", "--add-super", "-rs", "--remove-super")
            sup, sub = (other, target) if as_super else (target, other)
            changed = db.add_edge(sup, sub) if adding else db.remove_edge(sup, sub)
            if not changed:
                state = "already" if adding else "not"
                logger.warning(f"'{sup.name}' is {state} a supertag of '{sub.name}'")
        else:
            raise FtagError(f"Unrecognized edit flag '{flag}'")


@tag.command("edit", context_settings=PASSTHROUGH)
@click.argument("name")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def tag_edit(ctx, name, args):
    """Edit tag NAME.

    \b
      -as/--add-super TAG      -rs/--remove-super TAG   -ras/--remove-all-supers
      -ab/--add-sub TAG        -rb/--remove-sub TAG     -rab/--remove-all-subs
      -n/--rename NEW          -c/--color #RRGGBB       -rc/--remove-color
    """
    db = _load(ctx)
    try:
        _edit_tag(db, db.tags.require(name), list(args))
    except FtagError as e:
        _fail(e)
    _persist(db)


def _apply_targets(tracker: Tracker, args, on_path, on_inode, on_discovered) -> None:
    parsed = parse_target_args(list(args), read_stdin=_read_stdin)
    if not parsed.targets:
        raise FtagError("No files given")
    if on_inode is None and any(t.kind == "inode" for t in parsed.targets):
        raise FtagError("Cannot update from inode numbers, give files or directories instead")
    for target in parsed.targets:
        if target.kind == "inode":
            on_inode(target.inode)
        elif target.kind == "recursive":
            tracker.apply_recursive(target.path, on_discovered, parsed.entry_filter)
        else:
            on_path(target.path, parsed.search_index_first)


@tag.command("add", context_settings=PASSTHROUGH)
@click.argument("name")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def tag_add(ctx, name, args):
    """Tag files with NAME. Untracked files are added to the index."""
    db = _load(ctx)
    tracker = Tracker(db)
    try:
        target = db.tags.require(name)
        _apply_targets(
            tracker, args,
            on_path=lambda path, _: tracker.tag_path(target, path),
            on_inode=lambda inode: tracker.tag_inode(target, inode),
            on_discovered=tracker.tag_discovered(target),
        )
    except FtagError as e:
        _fail(e)
    _persist(db)


@tag.command("rm", context_settings=PASSTHROUGH)
@click.argument("name")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def tag_rm(ctx, name, args):
    """Remove tag NAME from files."""
    db = _load(ctx)
    tracker = Tracker(db)
    try:
        target = db.tags.require(name)
        _apply_targets(
            tracker, args,
            on_path=lambda path, search_first: tracker.untag_path(target, path, search_first),
            on_inode=lambda inode: tracker.untag_inode(target, inode),
            on_discovered=tracker.untag_discovered(target),
        )
    except FtagError as e:
        _fail(e)
    _persist(db)


# --- index ---


@cli.command(context_settings=PASSTHROUGH)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def add(ctx, args):
    """Add files to the index.

    \b
      PATH...                  files or directories
      -r/--recursive DIR...    everything under DIR (see --only-files,
                               --only-directories, --all-entries)
      -i/--inode INUM...       inodes, with no path until 'ftag update'
      -                        read the rest of a list from stdin, one
                               per line (-sa to shell-split, -id to
                               take '-' literally)
    """
    db = _load(ctx)
    tracker = Tracker(db)
    try:
        _apply_targets(
            tracker, args,
            on_path=lambda path, _: tracker.add_path(path),
            on_inode=tracker.add_inode,
            on_discovered=tracker.on_discovered,
        )
    except FtagError as e:
        _fail(e)
    _persist(db)


@cli.command(context_settings=PASSTHROUGH)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def rm(ctx, args):
    """Remove files from the index and from every tag."""
    db = _load(ctx)
    tracker = Tracker(db)
    try:
        _apply_targets(
            tracker, args,
            on_path=tracker.remove_path,
            on_inode=tracker.remove_inode,
            on_discovered=tracker.remove_discovered,
        )
    except FtagError as e:
        _fail(e)
    _persist(db)


@cli.command(context_settings=PASSTHROUGH)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def update(ctx, args):
    """Store the current path of tracked files that were renamed or moved."""
    db = _load(ctx)
    tracker = Tracker(db)
    try:
        _apply_targets(
            tracker, args,
            on_path=lambda path, _: tracker.update_path(path),
            on_inode=None,
            on_discovered=tracker.update_discovered,
        )
    except FtagError as e:
        _fail(e)
    _persist(db)


@cli.command(context_settings=PASSTHROUGH)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def fix(ctx, args):
    """Repair entries whose inode changed.

    \b
      -p/--path-all                  re-check every stored path
      -pi/--path-i INUM              re-check the stored path of INUM
      -pp/--path-p PATH              re-check a stored path
      -rip/--replace-ip INUM PATH    move INUM to the inode of PATH
      -rii/--replace-ii INUM NEW     move INUM to NEW
      -rpp/--replace-pp PATH NEW     move stored PATH to the inode of NEW
      -rpi/--replace-pi PATH INUM    move stored PATH to INUM
    """
    db = _load(ctx)
    service = FixService(db)
    try:
        service.apply(parse_fix_args(list(args)))
    except FtagError as e:
        _fail(e)
    _persist(db)
    console.print(f"Fixed {service.outcome.applied} inode(s), skipped {service.outcome.skipped}")


def main() -> None:
    cli(prog_name="ftag")


if __name__ == "__main__":
    main()
