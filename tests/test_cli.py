"""Tests for the markmv CLI commands."""

import inspect
import json
from unittest.mock import MagicMock, patch

import pytest

from conftest import read

from markmv import __version__
from markmv.cli import cli
from markmv.models import OperationReport, OperationResult

GUIDE = "# Intro\n\nWelcome. See [details](#details).\n\n# Details\n\nThe details.\n"


class CoroutineClosingMock(MagicMock):
    """MagicMock that closes coroutine args to avoid un-awaited warnings."""

    last_coro_locals: dict[str, object] | None = None

    def __call__(self, *args, **kwargs):
        if args and inspect.iscoroutine(args[0]):
            frame = args[0].cr_frame
            if frame is not None:
                self.last_coro_locals = frame.f_locals.copy()
            args[0].close()
        return super().__call__(*args, **kwargs)


def _empty_report(operation: str) -> OperationReport:
    return OperationReport(result=OperationResult(success=True, dry_run=True, operation=operation, root="/kb"))


@pytest.fixture
def linked(corpus, write_doc):
    write_doc("a.md", "# A\n")
    write_doc("b.md", "[a](a.md)\n")
    return corpus


# ─────────────────────────────────────────────────────────────────────────────
# Group
# ─────────────────────────────────────────────────────────────────────────────


class TestGroup:
    """Top-level options and command lookup."""

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self, runner):
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        for command in ("move", "split", "join", "merge", "convert", "validate"):
            assert command in result.output

    def test_typo_suggestion(self, runner):
        result = runner.invoke(cli, ["mvoe", "a.md", "b.md"])

        assert result.exit_code != 0
        assert "Did you mean 'move'" in result.output

    def test_json_errors_for_planning_failure(self, runner, linked):
        result = runner.invoke(cli, ["--json-errors", "move", "nope.md", "z.md"])

        assert result.exit_code == 1
        error = json.loads(result.output.strip().splitlines()[-1])
        assert error["error"]["code"] == "SOURCE_NOT_FOUND"

    def test_json_errors_after_command(self, runner, linked):
        result = runner.invoke(cli, ["move", "nope.md", "z.md", "--json-errors"])

        assert result.exit_code == 1
        assert '"SOURCE_NOT_FOUND"' in result.output

    def test_plain_error(self, runner, linked):
        result = runner.invoke(cli, ["move", "nope.md", "z.md"])

        assert result.exit_code == 1
        assert "Error: Source is not a document" in result.output

    def test_root_option(self, runner, tmp_path, monkeypatch):
        monkeypatch.delenv("MARKMV_ROOT", raising=False)
        corpus = tmp_path / "elsewhere"
        corpus.mkdir()
        (corpus / "a.md").write_text("[x](x.md)\n", encoding="utf-8")

        result = runner.invoke(cli, ["--root", str(corpus), "validate"])

        assert result.exit_code == 1
        assert "1 broken link(s)" in result.output


# ─────────────────────────────────────────────────────────────────────────────
# Move
# ─────────────────────────────────────────────────────────────────────────────


class TestMoveCommand:
    def test_move(self, runner, linked):
        result = runner.invoke(cli, ["move", "a.md", "z.md"])

        assert result.exit_code == 0, result.output
        assert "Move: applied" in result.output
        assert "created  z.md" in result.output
        assert "Links OK" in result.output
        assert read(linked / "b.md") == "[a](z.md)\n"

    def test_dry_run_verbose(self, runner, linked):
        result = runner.invoke(cli, ["move", "a.md", "z.md", "--dry-run", "-v"])

        assert result.exit_code == 0
        assert "Dry run: move would make" in result.output
        assert "Changes:" in result.output
        assert "[a](a.md) -> [a](z.md)" in result.output
        assert (linked / "a.md").exists()

    def test_json_output(self, runner, linked):
        result = runner.invoke(cli, ["move", "a.md", "z.md", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["result"]["success"] is True
        assert data["validation"]["valid"] is True

    def test_no_validate(self, runner, linked):
        result = runner.invoke(cli, ["move", "a.md", "z.md", "--json", "--no-validate"])

        assert json.loads(result.output)["validation"] is None

    def test_needs_destination(self, runner, linked):
        result = runner.invoke(cli, ["move", "a.md"])

        assert result.exit_code == 2
        assert "at least one source" in result.output

    def test_collision_and_overwrite(self, runner, linked):
        refused = runner.invoke(cli, ["move", "a.md", "b.md"])
        forced = runner.invoke(cli, ["move", "a.md", "b.md", "--overwrite"])

        assert refused.exit_code == 1
        assert "already exists" in refused.output
        assert forced.exit_code == 0
        assert "Warning: Replacing existing file" in forced.output
        assert read(linked / "b.md") == "# A\n"

    def test_quiet_hides_warnings(self, runner, linked):
        result = runner.invoke(cli, ["-q", "move", "a.md", "b.md", "--overwrite"])

        assert result.exit_code == 0
        assert "Warning:" not in result.output


# ─────────────────────────────────────────────────────────────────────────────
# Split / Join / Merge
# ─────────────────────────────────────────────────────────────────────────────


class TestSplitCommand:
    def test_split(self, runner, corpus, write_doc):
        write_doc("guide.md", GUIDE)

        result = runner.invoke(cli, ["split", "guide.md"])

        assert result.exit_code == 0, result.output
        assert read(corpus / "details.md") == "# Details\n\nThe details.\n"

    def test_split_by_lines_without_index(self, runner, corpus, write_doc):
        write_doc("notes.md", "one\ntwo\nthree\n")

        result = runner.invoke(cli, ["split", "notes.md", "--strategy", "lines", "--lines", "3", "--no-index"])

        assert result.exit_code == 0, result.output
        assert read(corpus / "section-1.md") == "one\ntwo\n"
        assert read(corpus / "section-2.md") == "three\n"
        assert not (corpus / "notes.md").exists()

    def test_bad_lines_value(self, runner, corpus, write_doc):
        write_doc("notes.md", "one\n")

        result = runner.invoke(cli, ["split", "notes.md", "--strategy", "lines", "--lines", "x,y"])

        assert result.exit_code == 2
        assert "comma-separated" in result.output

    def test_strategy_parameters_forwarded(self, runner, corpus):
        with patch("markmv.cli.run_async", new_callable=CoroutineClosingMock) as mock_run:
            mock_run.return_value = _empty_report("split")
            result = runner.invoke(
                cli,
                ["split", "notes.md", "--strategy", "size", "--max-lines", "40", "-o", "parts", "--dry-run"],
            )

        assert result.exit_code == 0, result.output
        forwarded = mock_run.last_coro_locals
        assert forwarded["strategy"] == "size"
        assert forwarded["params"] == {"max_lines": 40}
        assert forwarded["output_dir"] == "parts"
        assert forwarded["dry_run"] is True
        assert forwarded["keep_index"] is True

    def test_unknown_strategy_rejected_by_click(self, runner, corpus, write_doc):
        write_doc("notes.md", "# A\n")

        result = runner.invoke(cli, ["split", "notes.md", "--strategy", "chapters"])

        assert result.exit_code == 2


class TestJoinMergeCommands:
    def test_join(self, runner, corpus, write_doc):
        write_doc("a.md", "# A\n")
        write_doc("b.md", "# B\n")

        result = runner.invoke(cli, ["join", "b.md", "a.md", "-o", "all.md", "--order", "manual", "--separator", "\\n\\n"])

        assert result.exit_code == 0, result.output
        assert read(corpus / "all.md") == "# B\n\n# A\n"

    def test_merge_conflict_without_terminal(self, runner, corpus, write_doc):
        write_doc("a.md", "# Setup\n")
        write_doc("b.md", "# Setup\n")

        result = runner.invoke(cli, ["merge", "a.md", "b.md", "--into", "all.md"])

        assert result.exit_code == 1
        assert "heading conflict" in result.output
        assert "Hint:" in result.output
        assert "--resolve setup=append|prepend" in result.output
        assert not (corpus / "all.md").exists()

    def test_merge_conflict_json_errors(self, runner, corpus, write_doc):
        write_doc("a.md", "# Setup\n")
        write_doc("b.md", "# Setup\n")

        result = runner.invoke(cli, ["--json-errors", "merge", "a.md", "b.md", "--into", "all.md"])

        error = json.loads(result.output.strip().splitlines()[-1])
        assert error["error"]["code"] == "MERGE_CONFLICT"
        assert error["error"]["details"]["conflicts"][0]["id"] == "setup"

    def test_merge_with_resolution(self, runner, corpus, write_doc):
        write_doc("a.md", "# Setup\n")
        write_doc("b.md", "# Setup\n")

        result = runner.invoke(cli, ["merge", "a.md", "b.md", "--into", "all.md", "--resolve", "setup=prepend"])

        assert result.exit_code == 0, result.output
        assert read(corpus / "all.md") == "# Setup (a)\n\n# Setup\n"

    def test_bad_resolution(self, runner, corpus, write_doc):
        write_doc("a.md", "# Setup\n")

        result = runner.invoke(cli, ["merge", "a.md", "--into", "all.md", "--resolve", "setup=both"])

        assert result.exit_code == 2


# ─────────────────────────────────────────────────────────────────────────────
# Convert / Validate
# ─────────────────────────────────────────────────────────────────────────────


class TestConvertValidateCommands:
    def test_convert(self, runner, linked):
        result = runner.invoke(cli, ["convert", "b.md", "--link-style", "wikilink"])

        assert result.exit_code == 0, result.output
        assert read(linked / "b.md") == "[[a]]\n"

    def test_convert_without_option(self, runner, linked):
        result = runner.invoke(cli, ["convert"])

        assert result.exit_code == 1
        assert "Nothing to convert" in result.output

    def test_validate_ok(self, runner, linked):
        result = runner.invoke(cli, ["validate"])

        assert result.exit_code == 0
        assert "Links OK (2 files checked)" in result.output

    def test_validate_broken(self, runner, corpus, write_doc):
        write_doc("a.md", "# A\n\n[x](missing.md)\n")

        result = runner.invoke(cli, ["validate"])

        assert result.exit_code == 1
        assert "a.md:3  [x](missing.md)  (missing)" in result.output

    def test_validate_json(self, runner, corpus, write_doc):
        write_doc("a.md", "[x](a.md#nope)\n")

        result = runner.invoke(cli, ["validate", "--json"])

        data = json.loads(result.output)
        assert data["valid"] is False
        assert data["broken_links"][0]["reason"] == "dangling-fragment"


class TestRenameHeadingCommand:
    def test_rename(self, runner, corpus, write_doc):
        write_doc("guide.md", GUIDE)
        write_doc("ref.md", "[d](guide.md#details)\n")

        result = runner.invoke(cli, ["rename-heading", "Details", "Specifics", "guide.md"])

        assert result.exit_code == 0, result.output
        assert "Rename-heading: applied 2 change(s)" in result.output
        assert "Links OK" in result.output
        assert "# Specifics\n" in read(corpus / "guide.md")
        assert "See [details](#specifics)." in read(corpus / "guide.md")
        assert read(corpus / "ref.md") == "[d](guide.md#specifics)\n"

    def test_dry_run_verbose(self, runner, corpus, write_doc):
        write_doc("guide.md", GUIDE)
        write_doc("ref.md", "[d](guide.md#details)\n")

        result = runner.invoke(cli, ["rename-heading", "Details", "Specifics", "--dry-run", "-v"])

        assert result.exit_code == 0, result.output
        assert "Dry run: rename-heading would make 2 change(s)" in result.output
        assert "[d](guide.md#details) -> [d](guide.md#specifics)" in result.output
        assert read(corpus / "guide.md") == GUIDE

    def test_heading_not_found_json_errors(self, runner, corpus, write_doc):
        write_doc("guide.md", GUIDE)

        result = runner.invoke(cli, ["--json-errors", "rename-heading", "Nope", "Other"])

        assert result.exit_code == 1
        error = json.loads(result.output.strip().splitlines()[-1])
        assert error["error"]["code"] == "HEADING_NOT_FOUND"

    def test_passes_arguments(self, runner, corpus):
        with patch("markmv.cli.run_async", new_callable=CoroutineClosingMock) as mock_run:
            mock_run.return_value = _empty_report("rename-heading")
            result = runner.invoke(cli, ["rename-heading", "Old", "New", "a.md", "b.md", "--no-validate"])

        assert result.exit_code == 0, result.output
        assert mock_run.last_coro_locals["old_heading"] == "Old"
        assert mock_run.last_coro_locals["new_heading"] == "New"
        assert mock_run.last_coro_locals["files"] == ("a.md", "b.md")
        assert mock_run.last_coro_locals["check"] is False
