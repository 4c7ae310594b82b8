#!/usr/bin/env python3
"""
markmv: refactor interlinked markdown without breaking links

Usage:
    markmv move old.md new.md                 # Move a file, rewrite links to it
    markmv split guide.md --strategy headers  # One file per section
    markmv join a.md b.md -o book.md          # Concatenate files
    markmv merge notes.md --into main.md      # Merge into an existing file
    markmv convert docs/ --link-style wikilink
    markmv rename-heading Setup Installation  # Rewrite anchors to a heading
    markmv validate                           # Report broken links
"""

from __future__ import annotations

import asyncio
import difflib
import json
import os
import sys
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, NoReturn

import click
from click.exceptions import ClickException, UsageError

from . import __version__ as MARKMV_VERSION
from .config import (
    LINK_STYLE_CHOICES,
    MERGE_STRATEGY_CHOICES,
    ORDER_STRATEGY_CHOICES,
    PATH_RESOLUTION_CHOICES,
    SPLIT_STRATEGY_CHOICES,
)

if TYPE_CHECKING:
    from .models import OperationReport, ValidationReport


def run_async(coro):
    """Run async function synchronously."""
    return asyncio.run(coro)


def output(data, as_json: bool = False):
    """Output data as JSON or formatted text."""
    if as_json:
        click.echo(json.dumps(data, indent=2, default=str))
    else:
        click.echo(data)


def _handle_error(ctx: click.Context, error: Exception, exit_code: int = 1) -> NoReturn:
    """Print an error, as JSON when --json-errors is set, and exit."""
    from .errors import MarkmvError, format_error_json

    json_errors = ctx.obj.get("json_errors", False) if ctx.obj else False

    if isinstance(error, MarkmvError):
        if json_errors:
            click.echo(error.to_json(), err=True)
        else:
            click.echo(f"Error: {error.message}", err=True)
            suggestion = error.details.get("suggestion") if error.details else None
            if suggestion:
                click.echo(f"Hint: {suggestion}", err=True)
    else:
        if json_errors:
            click.echo(format_error_json("INTERNAL_ERROR", str(error)), err=True)
        else:
            click.echo(f"Error: {error}", err=True)

    sys.exit(exit_code)


def get_error_code_for_exception(exc: Exception) -> str:
    """Map Click exceptions to error codes."""
    if isinstance(exc, click.BadParameter):
        return "INVALID_ARGUMENT"
    elif isinstance(exc, click.MissingParameter):
        return "MISSING_ARGUMENT"
    elif isinstance(exc, click.NoSuchOption):
        return "UNKNOWN_OPTION"
    elif isinstance(exc, UsageError):
        return "USAGE_ERROR"
    elif isinstance(exc, ClickException):
        return "CLI_ERROR"
    return "UNKNOWN_ERROR"


# ─────────────────────────────────────────────────────────────────────────────
# JSON Error Handling
# ─────────────────────────────────────────────────────────────────────────────


class JsonErrorGroup(click.Group):
    """Click group that formats errors as JSON when --json-errors is set.

    This handles Click validation errors (bad option values, missing args, etc.)
    that occur before the command callback is invoked. Also provides typo
    suggestions for unknown commands.
    """

    def resolve_command(self, ctx, args):
        """Override to suggest similar commands for typos."""
        try:
            return super().resolve_command(ctx, args)
        except UsageError as e:
            cmd_name = args[0] if args else ""
            if cmd_name and "No such command" in str(e):
                matches = difflib.get_close_matches(cmd_name, self.list_commands(ctx), n=1, cutoff=0.6)
                if matches:
                    raise UsageError(f"No such command '{cmd_name}'. Did you mean '{matches[0]}'?")
            raise

    def invoke(self, ctx):
        """Override invoke to catch and format errors."""
        try:
            return super().invoke(ctx)
        except ClickException as e:
            if ctx.params.get("json_errors"):
                from .errors import format_error_json

                click.echo(format_error_json(get_error_code_for_exception(e), e.format_message()), err=True)
                raise SystemExit(1)
            raise

    def main(
        self,
        args: Sequence[str] | None = None,
        prog_name: str | None = None,
        complete_var: str | None = None,
        standalone_mode: bool = True,
        **extra: Any,
    ) -> Any:
        """Override main to catch errors during argument parsing.

        --json-errors is accepted anywhere on the command line and moved to
        the front so Click parses it as the global flag.
        """
        from .errors import format_error_json

        argv = list(args) if args is not None else list(sys.argv[1:])
        if "--json-errors" not in argv:
            return super().main(args, prog_name, complete_var, standalone_mode, **extra)

        argv = ["--json-errors"] + [a for a in argv if a != "--json-errors"]
        try:
            return super().main(argv, prog_name, complete_var, standalone_mode=False, **extra)
        except ClickException as e:
            click.echo(format_error_json(get_error_code_for_exception(e), e.format_message()), err=True)
            raise SystemExit(1)
        except SystemExit:
            raise
        except Exception as e:
            click.echo(format_error_json("INTERNAL_ERROR", str(e)), err=True)
            raise SystemExit(1)


# ─────────────────────────────────────────────────────────────────────────────
# Report Formatting
# ─────────────────────────────────────────────────────────────────────────────


def _rel(path: str | None, root: str) -> str:
    if path is None:
        return "-"
    try:
        rel = os.path.relpath(path, root)
    except ValueError:
        return path
    return path if rel.startswith("..") else rel


def format_validation(report: ValidationReport, root: str) -> str:
    """Human-readable validation summary, one line per broken link."""
    if report.valid:
        return f"Links OK ({len(report.checked_files)} files checked)"

    lines = [f"{report.broken_count} broken link(s) in {len(report.checked_files)} checked files"]
    for broken in report.broken_links:
        lines.append(f"  {_rel(broken.source, root)}:{broken.link.line}  {broken.link.raw}  ({broken.reason})")
    for error in report.errors:
        lines.append(f"  error: {error.message}")
    return "\n".join(lines)


def format_report(report: OperationReport, verbose: bool = False) -> str:
    """Human-readable summary of an operation and its validation."""
    result = report.result
    root = result.root
    if result.dry_run:
        header = f"Dry run: {result.operation} would make {len(result.changes)} change(s)"
    elif result.success:
        header = f"{result.operation.capitalize()}: applied {len(result.changes)} change(s)"
    else:
        header = f"{result.operation.capitalize()} failed after {len(result.changes)} change(s)"
    lines = [header]

    for label, paths in (
        ("created", result.created_files),
        ("modified", result.modified_files),
        ("deleted", result.deleted_files),
    ):
        for path in paths:
            lines.append(f"  {label:<9}{_rel(path, root)}")

    if verbose:
        lines.append("")
        lines.append("Changes:")
        for change in result.changes:
            if change.kind == "link-updated":
                where = f"{_rel(change.path, root)}:{change.line}" if change.line else _rel(change.path, root)
                lines.append(f"  {change.kind:<14}{where}  {change.old_value} -> {change.new_value}")
            else:
                lines.append(f"  {change.kind:<14}{_rel(change.path, root)}")

    for error in result.errors:
        lines.append(f"Error: {error.message}")
    if report.validation is not None:
        lines.append(format_validation(report.validation, root))
    return "\n".join(lines)


def _emit_report(report: OperationReport, *, as_json: bool, verbose: bool) -> None:
    from ._logging import is_quiet

    if as_json:
        output(report.model_dump(mode="json"), as_json=True)
    else:
        click.echo(format_report(report, verbose=verbose))
        if not is_quiet():
            for warning in report.result.warnings:
                click.echo(f"Warning: {warning}", err=True)

    if not report.result.success:
        sys.exit(1)


def _run_operation(ctx: click.Context, coro, *, as_json: bool, verbose: bool) -> None:
    from .errors import MarkmvError

    try:
        report = run_async(coro)
    except MarkmvError as e:
        _handle_error(ctx, e)
    _emit_report(report, as_json=as_json, verbose=verbose)


def operation_options(func):
    """Options shared by every command that changes files."""
    func = click.option("--no-validate", is_flag=True, help="Skip link validation afterwards")(func)
    func = click.option("--json", "as_json", is_flag=True, help="Output as JSON")(func)
    func = click.option("--verbose", "-v", is_flag=True, help="List every individual change")(func)
    func = click.option("--dry-run", is_flag=True, help="Show what would change without writing")(func)
    return func


# ─────────────────────────────────────────────────────────────────────────────
# Main CLI Group
# ─────────────────────────────────────────────────────────────────────────────


@click.group(cls=JsonErrorGroup)
@click.version_option(version=MARKMV_VERSION, prog_name="markmv")
@click.option(
    "--root",
    type=click.Path(file_okay=False),
    envvar="MARKMV_ROOT",
    help="Corpus root (default: .markmv.yaml location or current directory)",
)
@click.option(
    "--json-errors",
    "json_errors",
    is_flag=True,
    help="Output errors as JSON (for programmatic use)",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    envvar="MARKMV_QUIET",
    help="Suppress warnings, show only errors and essential output",
)
@click.pass_context
def cli(ctx: click.Context, root: str | None, json_errors: bool, quiet: bool):
    """markmv: move, split, join and merge markdown files without breaking links.

    Every link in the corpus that points at a changed file is rewritten, and
    the result is validated afterwards.

    \b
    Quick start:
      markmv move old.md new.md --dry-run     # Preview a rename
      markmv split guide.md                   # One file per top-level section
      markmv join a.md b.md -o ab.md          # Concatenate in dependency order
      markmv validate                         # Report broken links

    \b
    For programmatic error handling:
      markmv --json-errors move ...   # Errors output as JSON with error codes
    """
    from ._logging import set_quiet_mode

    ctx.ensure_object(dict)
    ctx.obj["root"] = root
    ctx.obj["json_errors"] = json_errors
    ctx.obj["quiet"] = quiet

    if quiet:
        set_quiet_mode(True)


# ─────────────────────────────────────────────────────────────────────────────
# Move Command
# ─────────────────────────────────────────────────────────────────────────────


@cli.command()
@click.argument("paths", nargs=-1, required=True)
@click.option("--overwrite", is_flag=True, help="Replace destination files that already exist")
@operation_options
@click.pass_context
def move(
    ctx: click.Context,
    paths: tuple[str, ...],
    overwrite: bool,
    dry_run: bool,
    verbose: bool,
    as_json: bool,
    no_validate: bool,
):
    """Move or rename files and directories, updating every link to them.

    The last path is the destination. With several sources it is a
    directory the sources are moved into.

    \b
    Examples:
      markmv move guide.md docs/guide.md
      markmv move intro.md setup.md docs/      # Into a directory
      markmv move notes/ archive/notes         # A whole directory
    """
    from .core import move_documents

    if len(paths) < 2:
        raise UsageError("move needs at least one source and a destination")

    *sources, destination = paths
    _run_operation(
        ctx,
        move_documents(
            sources,
            destination,
            root=ctx.obj["root"],
            overwrite=overwrite,
            dry_run=dry_run,
            check=not no_validate,
        ),
        as_json=as_json,
        verbose=verbose,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Split Command
# ─────────────────────────────────────────────────────────────────────────────


def _parse_lines(ctx: click.Context, param: click.Parameter, value: str | None) -> list[int] | None:
    if value is None:
        return None
    try:
        return [int(part) for part in value.split(",") if part.strip()]
    except ValueError:
        raise click.BadParameter("expected comma-separated line numbers, e.g. 10,25,40")


@cli.command()
@click.argument("source")
@click.option(
    "--strategy",
    type=click.Choice(SPLIT_STRATEGY_CHOICES),
    help="How to find split points (default: headers)",
)
@click.option("--header-level", type=click.IntRange(1, 6), help="headers: split at headings of this level or above")
@click.option("--max-size", type=click.IntRange(min=1), help="size: maximum size per part in KB")
@click.option("--max-lines", type=click.IntRange(min=1), help="size: maximum lines per part")
@click.option("--marker", "markers", multiple=True, help="manual: marker line (repeatable)")
@click.option("--lines", callback=_parse_lines, help="lines: 1-based line numbers that start a part, e.g. 10,40")
@click.option("--output-dir", "-o", type=click.Path(file_okay=False), help="Directory for the parts")
@click.option("--no-index", is_flag=True, help="Delete the source instead of turning it into an index")
@operation_options
@click.pass_context
def split(
    ctx: click.Context,
    source: str,
    strategy: str | None,
    header_level: int | None,
    max_size: int | None,
    max_lines: int | None,
    markers: tuple[str, ...],
    lines: list[int] | None,
    output_dir: str | None,
    no_index: bool,
    dry_run: bool,
    verbose: bool,
    as_json: bool,
    no_validate: bool,
):
    """Split a file into several, redirecting links to its sections.

    \b
    Examples:
      markmv split guide.md                        # At top-level headings
      markmv split guide.md --header-level 2
      markmv split log.md --strategy size --max-size 50
      markmv split notes.md --strategy manual --marker "<!-- cut -->"
      markmv split notes.md --strategy lines --lines 40,120
    """
    from .core import split_document

    params: dict[str, Any] = {}
    if header_level is not None:
        params["header_level"] = header_level
    if max_size is not None:
        params["max_size"] = max_size
    if max_lines is not None:
        params["max_lines"] = max_lines
    if markers:
        params["markers"] = list(markers)
    if lines is not None:
        params["lines"] = lines

    _run_operation(
        ctx,
        split_document(
            source,
            strategy,
            root=ctx.obj["root"],
            output_dir=output_dir,
            keep_index=not no_index,
            dry_run=dry_run,
            check=not no_validate,
            **params,
        ),
        as_json=as_json,
        verbose=verbose,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Join / Merge Commands
# ─────────────────────────────────────────────────────────────────────────────


def _decode_separator(value: str | None) -> str | None:
    import codecs

    return codecs.decode(value, "unicode_escape") if value is not None else None


@cli.command()
@click.argument("sources", nargs=-1, required=True)
@click.option("--output", "-o", "destination", required=True, help="File to create")
@click.option(
    "--order",
    type=click.Choice(ORDER_STRATEGY_CHOICES),
    help="Order of the joined files (default: dependency; manual keeps argument order)",
)
@click.option("--separator", help="Text between files (escape sequences such as \\n are decoded)")
@operation_options
@click.pass_context
def join(
    ctx: click.Context,
    sources: tuple[str, ...],
    destination: str,
    order: str | None,
    separator: str | None,
    dry_run: bool,
    verbose: bool,
    as_json: bool,
    no_validate: bool,
):
    """Concatenate files into a new one; links to them point at the result.

    \b
    Examples:
      markmv join ch1.md ch2.md ch3.md -o book.md
      markmv join *.md -o all.md --order alphabetical
    """
    from .core import join_documents

    _run_operation(
        ctx,
        join_documents(
            sources,
            destination,
            order,
            root=ctx.obj["root"],
            separator=_decode_separator(separator),
            dry_run=dry_run,
            check=not no_validate,
        ),
        as_json=as_json,
        verbose=verbose,
    )


def _parse_resolutions(ctx: click.Context, param: click.Parameter, values: tuple[str, ...]) -> dict[str, str]:
    resolutions: dict[str, str] = {}
    for value in values:
        conflict_id, sep, choice = value.partition("=")
        if not sep or choice not in ("append", "prepend"):
            raise click.BadParameter(f"expected ID=append or ID=prepend, got '{value}'")
        resolutions[conflict_id] = choice
    return resolutions


def _prompt_resolutions(conflicts, resolutions: dict[str, str], root: str) -> dict[str, str]:
    resolved = dict(resolutions)
    for conflict in conflicts:
        files = ", ".join(_rel(path, root) for path in conflict.files)
        click.echo(f"Heading '{conflict.heading}' (#{conflict.id}) appears in: {files}", err=True)
        resolved[conflict.id] = click.prompt(
            "  Keep the first occurrence and rename later ones (append) or the reverse (prepend)",
            type=click.Choice(["append", "prepend"]),
            default="append",
            err=True,
        )
    return resolved


@cli.command()
@click.argument("sources", nargs=-1, required=True)
@click.option("--into", "destination", required=True, help="File to merge into (created if missing)")
@click.option(
    "--strategy",
    type=click.Choice(MERGE_STRATEGY_CHOICES),
    help="Heading conflict handling (default: interactive)",
)
@click.option(
    "--order",
    type=click.Choice(ORDER_STRATEGY_CHOICES),
    help="Order of the merged files (default: dependency)",
)
@click.option(
    "--resolve",
    "resolutions",
    multiple=True,
    callback=_parse_resolutions,
    help="Answer a conflict up front: ID=append or ID=prepend (repeatable)",
)
@click.option("--separator", help="Text between files (escape sequences such as \\n are decoded)")
@operation_options
@click.pass_context
def merge(
    ctx: click.Context,
    sources: tuple[str, ...],
    destination: str,
    strategy: str | None,
    order: str | None,
    resolutions: dict[str, str],
    separator: str | None,
    dry_run: bool,
    verbose: bool,
    as_json: bool,
    no_validate: bool,
):
    """Merge files into a destination, resolving duplicate headings.

    With the interactive strategy each heading conflict is asked about on a
    terminal; otherwise answer them with --resolve or pick a strategy.

    \b
    Examples:
      markmv merge draft.md --into guide.md --strategy append
      markmv merge a.md b.md --into ab.md --resolve setup=prepend
    """
    from .core import merge_documents
    from .errors import ConflictResolutionRequired, MarkmvError

    def attempt(answers: dict[str, str]):
        return run_async(
            merge_documents(
                sources,
                destination,
                strategy,
                order,
                root=ctx.obj["root"],
                resolutions=answers,
                separator=_decode_separator(separator),
                dry_run=dry_run,
                check=not no_validate,
            )
        )

    try:
        try:
            report = attempt(resolutions)
        except ConflictResolutionRequired as e:
            if as_json or ctx.obj["json_errors"] or not sys.stdin.isatty():
                raise
            from .core import get_root

            root = str(get_root(ctx.obj["root"]))
            report = attempt(_prompt_resolutions(e.conflicts, resolutions, root))
    except MarkmvError as e:
        _handle_error(ctx, e)

    _emit_report(report, as_json=as_json, verbose=verbose)


# ─────────────────────────────────────────────────────────────────────────────
# Convert / Validate Commands
# ─────────────────────────────────────────────────────────────────────────────


@cli.command()
@click.argument("files", nargs=-1)
@click.option("--link-style", type=click.Choice(LINK_STYLE_CHOICES), help="Rewrite links in this syntax")
@click.option(
    "--path-resolution",
    type=click.Choice(PATH_RESOLUTION_CHOICES),
    help="Rewrite targets root-relative (/docs/x.md) or relative (../x.md)",
)
@operation_options
@click.pass_context
def convert(
    ctx: click.Context,
    files: tuple[str, ...],
    link_style: str | None,
    path_resolution: str | None,
    dry_run: bool,
    verbose: bool,
    as_json: bool,
    no_validate: bool,
):
    """Rewrite link syntax or path form without changing where links point.

    With no FILES every document in the corpus is converted.

    \b
    Examples:
      markmv convert --link-style wikilink
      markmv convert docs/ --path-resolution relative --dry-run
    """
    from .core import convert_links

    _run_operation(
        ctx,
        convert_links(
            files,
            link_style,
            path_resolution,
            root=ctx.obj["root"],
            dry_run=dry_run,
            check=not no_validate,
        ),
        as_json=as_json,
        verbose=verbose,
    )


@cli.command("rename-heading")
@click.argument("old_heading")
@click.argument("new_heading")
@click.argument("files", nargs=-1)
@operation_options
@click.pass_context
def rename_heading(
    ctx: click.Context,
    old_heading: str,
    new_heading: str,
    files: tuple[str, ...],
    dry_run: bool,
    verbose: bool,
    as_json: bool,
    no_validate: bool,
):
    """Rename a heading and update every link to its anchor.

    With no FILES every document with a matching heading is renamed.

    \b
    Examples:
      markmv rename-heading "Setup" "Installation" docs/guide.md
      markmv rename-heading "FAQ" "Questions" --dry-run -v
    """
    from .core import rename_heading as rename_heading_op

    _run_operation(
        ctx,
        rename_heading_op(
            old_heading,
            new_heading,
            files,
            root=ctx.obj["root"],
            dry_run=dry_run,
            check=not no_validate,
        ),
        as_json=as_json,
        verbose=verbose,
    )


@cli.command()
@click.argument("files", nargs=-1)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def validate(ctx: click.Context, files: tuple[str, ...], as_json: bool):
    """Report links that point at missing files or headings.

    Exits with status 1 when broken links are found.

    \b
    Examples:
      markmv validate
      markmv validate docs/guide.md --json
    """
    from .core import check_corpus, get_root
    from .errors import MarkmvError

    try:
        report = run_async(check_corpus(files, root=ctx.obj["root"]))
        root = str(get_root(ctx.obj["root"]))
    except MarkmvError as e:
        _handle_error(ctx, e)

    if as_json:
        output(report.model_dump(mode="json"), as_json=True)
    else:
        click.echo(format_validation(report, root))

    if not report.valid:
        sys.exit(1)


# ─────────────────────────────────────────────────────────────────────────────
# Entry Point
# ─────────────────────────────────────────────────────────────────────────────


def main():
    """Entry point for markmv CLI."""
    from ._logging import configure_logging

    configure_logging()
    cli()


if __name__ == "__main__":
    main()
