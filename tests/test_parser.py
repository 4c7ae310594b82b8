"""Tests for markmv.parser: documents, headings, code masking and link recognition."""

import pytest

from markmv.errors import ErrorCode, ParseError
from markmv.parser import load_document, parse_document, render_link, retarget, slugify


class TestSlugify:
    """Heading text to fragment identifier."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("Hello World", "hello-world"),
            ("What's New?", "whats-new"),
            ("[Link](x.md) text", "link-text"),
            ("Use `code` here", "use-code-here"),
            ("  Spaces   around ", "spaces-around"),
            ("Ünïcode Title", "ünïcode-title"),
            ("already-hyphenated", "already-hyphenated"),
        ],
    )
    def test_slugify(self, text, expected):
        assert slugify(text) == expected


class TestHeadings:
    """Heading extraction."""

    def test_levels_lines_and_slugs(self):
        doc = parse_document("/docs/a.md", "# Hello World\n\n## Hello World\n\n## API `v2` *new*\n")

        assert [h.level for h in doc.headings] == [1, 2, 2]
        assert [h.line for h in doc.headings] == [1, 3, 5]
        assert [h.slug for h in doc.headings] == ["hello-world", "hello-world-1", "api-v2-new"]
        assert doc.headings[2].text == "API `v2` *new*"

    def test_setext_headings(self):
        doc = parse_document("/docs/a.md", "Title\n=====\n\nSub\n---\n")

        assert [(h.level, h.slug) for h in doc.headings] == [(1, "title"), (2, "sub")]

    def test_heading_inside_code_block_ignored(self):
        doc = parse_document("/docs/a.md", "```\n# not a heading\n```\n\n# Real\n")

        assert [h.slug for h in doc.headings] == ["real"]

    def test_heading_offsets_point_at_line_start(self):
        content = "intro\n\n# Title\n"
        doc = parse_document("/docs/a.md", content)

        assert content[doc.headings[0].offset :].startswith("# Title")


class TestFrontmatter:
    """YAML frontmatter handling."""

    def test_metadata_parsed(self):
        content = "---\ntitle: T\ntags: [a, b]\n---\n# H\n[l](x.md)\n"
        doc = parse_document("/docs/a.md", content)

        assert doc.metadata == {"title": "T", "tags": ["a", "b"]}
        assert doc.frontmatter_end == len("---\ntitle: T\ntags: [a, b]\n---\n")
        assert doc.body == "# H\n[l](x.md)\n"
        assert doc.headings[0].line == 5

    def test_links_in_frontmatter_ignored(self):
        doc = parse_document("/docs/a.md", '---\nsee: "[x](y.md)"\n---\nbody\n')

        assert doc.links == ()

    def test_invalid_yaml_raises(self):
        with pytest.raises(ParseError) as exc_info:
            parse_document("/docs/a.md", "---\ntitle: [unclosed\n---\nbody\n")

        assert "frontmatter" in exc_info.value.message

    def test_thematic_break_is_not_frontmatter(self):
        doc = parse_document("/docs/a.md", "---\nJust prose here.\n---\n")

        assert doc.metadata == {}
        assert doc.frontmatter_end == 0

    def test_crlf_frontmatter(self):
        content = "---\r\ntitle: T\r\n---\r\n# H\r\n"
        doc = parse_document("/docs/a.md", content)

        assert doc.metadata == {"title": "T"}
        assert doc.body == "# H\r\n"
        assert doc.headings[0].line == 4

    def test_blank_line_after_frontmatter(self):
        doc = parse_document("/docs/a.md", "---\ntitle: T\n---\n\n# H\n")

        assert doc.frontmatter_end == len("---\ntitle: T\n---\n")
        assert doc.body == "\n# H\n"

    def test_empty_frontmatter(self):
        doc = parse_document("/docs/a.md", "---\n---\nbody\n")

        assert doc.metadata == {}
        assert doc.body == "body\n"

    def test_unclosed_frontmatter_is_body(self):
        doc = parse_document("/docs/a.md", "---\ntitle: T\n\n[x](b.md)\n")

        assert doc.metadata == {}
        assert doc.frontmatter_end == 0
        assert [link.target for link in doc.links] == ["b.md"]


class TestLinkRecognition:
    """Each link style is found with its exact span."""

    def test_inline_link_with_fragment_and_title(self):
        content = '# Title\n\nSee [Other](./other.md#setup "Other doc") now.\n'
        doc = parse_document("/docs/a.md", content)

        assert len(doc.links) == 1
        link = doc.links[0]
        assert link.style == "inline"
        assert link.target == "./other.md"
        assert link.fragment == "setup"
        assert link.text == "Other"
        assert link.title == ' "Other doc"'
        assert link.line == 3
        assert link.raw == '[Other](./other.md#setup "Other doc")'
        assert content[link.start : link.end] == link.raw

    def test_pure_anchor(self):
        doc = parse_document("/docs/a.md", "[up](#top)\n")

        link = doc.links[0]
        assert link.target == ""
        assert link.fragment == "top"
        assert link.is_anchor

    def test_wikilinks_and_embeds(self):
        doc = parse_document("/docs/a.md", "[[Other Page#Setup|the setup]] and ![[image.png]]\n")

        first, second = doc.links
        assert first.style == "wikilink"
        assert (first.target, first.fragment, first.text, first.embed) == ("Other Page", "Setup", "the setup", False)
        assert second.style == "wikilink"
        assert second.target == "image.png"
        assert second.embed is True

    def test_reference_definition_is_the_link(self):
        content = '[guide][g]\n\n[g]: ./guide.md#intro "Guide"\n'
        doc = parse_document("/docs/a.md", content)

        assert len(doc.links) == 1
        link = doc.links[0]
        assert link.style == "reference"
        assert link.raw == '[g]: ./guide.md#intro "Guide"'
        assert (link.target, link.fragment, link.text) == ("./guide.md", "intro", "g")
        assert link.line == 3

    def test_image(self):
        doc = parse_document("/docs/a.md", "![diagram](img/d.png)\n")

        assert doc.links[0].style == "image"
        assert doc.links[0].target == "img/d.png"

    def test_mentions(self):
        doc = parse_document("/docs/a.md", "Import @./notes/todo.md, and email a@b.md.\n")

        assert len(doc.links) == 1
        link = doc.links[0]
        assert link.style == "claude"
        assert link.target == "./notes/todo.md"
        assert link.raw == "@./notes/todo.md"

    def test_code_comments_and_spans_masked(self):
        content = "```\n[x](a.md)\n```\n\nText `[y](b.md)` and <!-- [z](c.md) --> [real](d.md)\n"
        doc = parse_document("/docs/a.md", content)

        assert [link.target for link in doc.links] == ["d.md"]
        assert doc.code_blocks == ((0, 3),)

    def test_indented_code_block_masked(self):
        doc = parse_document("/docs/a.md", "Para.\n\n    [x](a.md)\n\n[y](b.md)\n")

        assert [link.target for link in doc.links] == ["b.md"]

    def test_crlf_line_endings(self):
        content = "# A\r\n\r\n[x](b.md)\r\n"
        doc = parse_document("/docs/a.md", content)

        assert doc.links[0].raw == "[x](b.md)"
        assert doc.links[0].line == 3
        assert doc.headings[0].slug == "a"

    def test_badge_keeps_inner_image(self):
        content = "[![logo](logo.png)](a.md)\n"
        doc = parse_document("/docs/a.md", content)

        outer, inner = doc.links
        assert (outer.style, outer.target, outer.text) == ("inline", "a.md", "![logo](logo.png)")
        assert outer.raw == content.strip()
        assert (inner.style, inner.target) == ("image", "logo.png")
        assert content[inner.start : inner.end] == "![logo](logo.png)"

    def test_brackets_in_link_text(self):
        doc = parse_document("/docs/a.md", "[see [1]](a.md)\n")

        assert len(doc.links) == 1
        assert (doc.links[0].text, doc.links[0].target) == ("see [1]", "a.md")

    def test_angle_destination(self):
        doc = parse_document("/docs/a.md", "[x](<my file.md#part two> \"T\")\n")

        link = doc.links[0]
        assert (link.target, link.fragment, link.title) == ("my file.md", "part two", ' "T"')
        assert link.angle is True
        assert link.raw == '[x](<my file.md#part two> "T")'

    def test_parentheses_in_destination(self):
        doc = parse_document("/docs/a.md", "[y](f_(1).md) and ![i](img(2).png)\n")

        assert [link.target for link in doc.links] == ["f_(1).md", "img(2).png"]
        assert doc.links[0].raw == "[y](f_(1).md)"

    def test_angle_reference_definition(self):
        doc = parse_document("/docs/a.md", "[r]: <my file.md> \"T\"\n")

        link = doc.links[0]
        assert (link.style, link.target, link.angle) == ("reference", "my file.md", True)
        assert link.raw == '[r]: <my file.md> "T"'


class TestLinkModes:
    """The link mode selects which syntaxes are recognised."""

    CONTENT = "[a](a.md) [[b]] @./c.md\n"

    @pytest.mark.parametrize(
        "mode,styles",
        [
            ("markdown", ["inline"]),
            ("wikilink", ["wikilink"]),
            ("claude", ["claude"]),
            ("combined", ["inline", "wikilink", "claude"]),
        ],
    )
    def test_modes(self, mode, styles):
        doc = parse_document("/docs/x.md", self.CONTENT, link_style=mode)

        assert [link.style for link in doc.links] == styles

    def test_unknown_mode_raises(self):
        with pytest.raises(ParseError):
            parse_document("/docs/x.md", self.CONTENT, link_style="html")


class TestRendering:
    """render_link reproduces raw text; retarget changes only the destination."""

    def test_round_trip_every_style(self):
        content = (
            "# Doc\n\n"
            '[inline](a.md "t") ![img](pic.png) [[wiki#Head|alias]] ![[embed]]\n'
            "@./claude.md and more\n\n"
            "[ref]:  ./x.md 'T'\n"
        )
        doc = parse_document("/docs/doc.md", content)

        assert {link.style for link in doc.links} == {"inline", "image", "wikilink", "claude", "reference"}
        for link in doc.links:
            assert render_link(link) == link.raw

    def test_retarget_keeps_title_and_text(self):
        doc = parse_document("/docs/a.md", '[Text](old.md#frag "Title")\n')

        assert retarget(doc.links[0], "new.md", "frag") == '[Text](new.md#frag "Title")'

    def test_retarget_reference_keeps_gap(self):
        doc = parse_document("/docs/a.md", "[r]:   old.md\n")

        assert retarget(doc.links[0], "new.md", None) == "[r]:   new.md"

    def test_angle_destinations_round_trip(self):
        content = "[![logo](logo.png)](a.md) [x](<my file.md>) [y](f_(1).md)\n\n[r]: <my file.md>\n"
        doc = parse_document("/docs/a.md", content)

        assert len(doc.links) == 5
        for link in doc.links:
            assert render_link(link) == link.raw

    def test_retarget_keeps_angle_brackets(self):
        doc = parse_document("/docs/a.md", "[x](<my file.md#part two>)\n")

        assert retarget(doc.links[0], "docs/my file.md", "part two") == "[x](<docs/my file.md#part two>)"


class TestLoadDocument:
    """Reading documents from disk."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(ParseError) as exc_info:
            load_document(tmp_path / "missing.md")

        assert "does not exist" in exc_info.value.message

    def test_invalid_utf8(self, tmp_path):
        path = tmp_path / "bad.md"
        path.write_bytes(b"\xff\xfe# x\n")

        with pytest.raises(ParseError) as exc_info:
            load_document(path)

        assert "UTF-8" in exc_info.value.message
        assert exc_info.value.code == ErrorCode.PARSE_ERROR

    def test_records_mtime_and_canonical_path(self, tmp_path):
        path = tmp_path / "sub" / "doc.md"
        path.parent.mkdir()
        path.write_text("# Doc\n", encoding="utf-8")

        doc = load_document(tmp_path / "sub" / ".." / "sub" / "doc.md")

        assert doc.path == str(path)
        assert doc.modified_at is not None
