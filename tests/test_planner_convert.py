"""Tests for plan_convert: link style and path form conversion."""

import pytest

from conftest import read

from markmv.errors import SourceNotFoundError, UnsupportedStrategyError
from markmv.executor import execute
from markmv.models import LinkUpdated
from markmv.planner import plan_convert

MIXED = "[B](b.md) [[b]] @./b.md ![[pic.png]] ![p](pic.png)\n"


@pytest.fixture
def target_files(corpus, write_doc):
    write_doc("b.md", "# B\n\n## Section One\n")
    (corpus / "pic.png").write_bytes(b"\x89PNG")
    return corpus


class TestLinkStyle:
    """Rewriting link syntax while keeping what each link resolves to."""

    def test_to_wikilink(self, target_files, write_doc, load_graph):
        write_doc("a.md", "[B doc](b.md) [b](b.md)\n")

        execute(plan_convert(load_graph(), ["a.md"], link_style="wikilink"))

        assert read(target_files / "a.md") == "[[b|B doc]] [[b]]\n"

    def test_to_markdown_slugifies_heading_text(self, target_files, write_doc, load_graph):
        write_doc("a.md", "[[b#Section One]]\n")

        execute(plan_convert(load_graph(), ["a.md"], link_style="markdown"))

        assert read(target_files / "a.md") == "[b](b.md#section-one)\n"

    def test_to_claude(self, target_files, write_doc, load_graph):
        write_doc("a.md", "[b](./b.md)\n")

        execute(plan_convert(load_graph(), ["a.md"], link_style="claude"))

        assert read(target_files / "a.md") == "@./b.md\n"

    def test_badge_kept_when_converting_to_mentions(self, target_files, write_doc, load_graph):
        write_doc("a.md", "[![p](pic.png)](b.md)\n")

        change_set = plan_convert(load_graph(), ["a.md"], link_style="claude")

        assert change_set.is_empty

    def test_angle_destination_keeps_form(self, target_files, write_doc, load_graph):
        write_doc("my b.md", "# My B\n")
        write_doc("sub/a.md", "[b](<../my b.md>)\n")

        execute(plan_convert(load_graph(), ["sub/a.md"], path_resolution="absolute"))

        assert read(target_files / "sub" / "a.md") == "[b](</my b.md>)\n"

    def test_external_and_broken_links_untouched(self, target_files, write_doc, load_graph):
        write_doc("a.md", "[x](https://example.com) [gone](gone.md)\n")

        change_set = plan_convert(load_graph(), ["a.md"], link_style="wikilink")

        assert change_set.is_empty

    def test_only_link_updates(self, target_files, write_doc, load_graph):
        write_doc("a.md", MIXED)

        change_set = plan_convert(load_graph(), ["a.md"], link_style="markdown")

        assert change_set.changes
        assert all(isinstance(change, LinkUpdated) for change in change_set.changes)

    @pytest.mark.parametrize("style", ["markdown", "wikilink", "claude", "combined"])
    def test_idempotent(self, target_files, write_doc, load_graph, style):
        write_doc("a.md", MIXED)

        execute(plan_convert(load_graph(), ["a.md"], link_style=style))
        again = plan_convert(load_graph(), ["a.md"], link_style=style)

        assert again.is_empty


class TestPathResolution:
    """Switching between relative and root-relative targets."""

    def test_to_absolute(self, target_files, write_doc, load_graph):
        write_doc("sub/a.md", "[b](../b.md)\n")

        execute(plan_convert(load_graph(), ["sub/a.md"], path_resolution="absolute"))

        assert read(target_files / "sub" / "a.md") == "[b](/b.md)\n"

    def test_to_relative(self, target_files, write_doc, load_graph):
        write_doc("sub/a.md", "[b](/b.md) @/b.md\n")

        execute(plan_convert(load_graph(), ["sub/a.md"], path_resolution="relative"))

        assert read(target_files / "sub" / "a.md") == "[b](../b.md) @../b.md\n"

    def test_wikilinks_keep_their_names(self, target_files, write_doc, load_graph):
        write_doc("sub/a.md", "[[b]]\n")

        assert plan_convert(load_graph(), ["sub/a.md"], path_resolution="absolute").is_empty


class TestConvertErrors:
    def test_nothing_requested(self, target_files, load_graph):
        with pytest.raises(UnsupportedStrategyError):
            plan_convert(load_graph(), ["b.md"])

    @pytest.mark.parametrize("options", [{"link_style": "html"}, {"path_resolution": "home"}])
    def test_unknown_values(self, target_files, load_graph, options):
        with pytest.raises(UnsupportedStrategyError):
            plan_convert(load_graph(), ["b.md"], **options)

    def test_missing_file(self, target_files, load_graph):
        with pytest.raises(SourceNotFoundError):
            plan_convert(load_graph(), ["nope.md"], link_style="markdown")
