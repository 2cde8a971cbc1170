"""Tests for Notion block serialisation (converters.render)."""

from __future__ import annotations

import pytest

from docmirror.converters.models import (
    BOLD,
    CODE,
    CodeBlock,
    Divider,
    Heading,
    ListItem,
    MediaRef,
    Paragraph,
    Quote,
    Span,
    Table,
)
from docmirror.converters.render import MAX_TEXT_LENGTH, NotionRenderer


@pytest.fixture
def renderer() -> NotionRenderer:
    return NotionRenderer()


class TestRichText:
    def test_plain_span(self, renderer):
        assert renderer.rich_text([Span(content="hi")]) == [
            {"type": "text", "text": {"content": "hi"}}
        ]

    def test_annotations_and_link(self, renderer):
        [obj] = renderer.rich_text(
            [Span(content="x", annotations=frozenset({BOLD}), link="https://e.com")]
        )
        assert obj["text"]["link"] == {"url": "https://e.com"}
        assert obj["annotations"]["bold"] is True
        assert obj["annotations"]["italic"] is False
        assert set(obj["annotations"]) == {"bold", "code", "italic", "strikethrough"}

    def test_long_content_split(self, renderer):
        objs = renderer.rich_text([Span(content="a" * (MAX_TEXT_LENGTH * 2 + 5))])
        assert [len(o["text"]["content"]) for o in objs] == [
            MAX_TEXT_LENGTH,
            MAX_TEXT_LENGTH,
            5,
        ]


class TestBlocks:
    def test_heading(self, renderer):
        block = renderer.render_block(Heading(level=2, text=[Span(content="T")]))
        assert block["type"] == "heading_2"
        assert block["object"] == "block"
        assert block["heading_2"]["rich_text"][0]["text"]["content"] == "T"

    def test_list_items(self, renderer):
        rendered = renderer.render(
            [
                ListItem(style="bullet", text=[Span(content="a")]),
                ListItem(style="numbered", text=[Span(content="b")]),
                ListItem(style="task", text=[Span(content="c")], checked=True),
            ]
        )
        assert [b["type"] for b in rendered] == [
            "bulleted_list_item",
            "numbered_list_item",
            "to_do",
        ]
        assert rendered[2]["to_do"]["checked"] is True

    def test_code_with_caption(self, renderer):
        block = renderer.render_block(
            CodeBlock(language="python", code="print(1)", caption="main.py")
        )
        assert block["code"]["language"] == "python"
        assert block["code"]["rich_text"][0]["text"]["content"] == "print(1)"
        assert block["code"]["caption"][0]["text"]["content"] == "main.py"

    def test_empty_code(self, renderer):
        block = renderer.render_block(CodeBlock(language="plain text", code=""))
        assert block["code"]["rich_text"] == []
        assert "caption" not in block["code"]

    def test_quote_and_divider(self, renderer):
        assert renderer.render_block(Quote(text=[Span(content="q")]))["type"] == "quote"
        assert renderer.render_block(Divider()) == {
            "object": "block",
            "type": "divider",
            "divider": {},
        }

    def test_table(self, renderer):
        table = Table(
            width=2,
            rows=[
                [[Span(content="h1")], [Span(content="h2")]],
                [[Span(content="1", annotations=frozenset({CODE}))], []],
            ],
        )
        block = renderer.render_block(table)
        body = block["table"]
        assert body["table_width"] == 2
        assert body["has_column_header"] is True
        assert len(body["children"]) == 2
        assert body["children"][1]["table_row"]["cells"][1] == []

    def test_external_image(self, renderer):
        block = renderer.render_block(
            MediaRef(media_type="image", locator="https://e.com/a.png", caption="A")
        )
        assert block["image"]["type"] == "external"
        assert block["image"]["external"] == {"url": "https://e.com/a.png"}
        assert block["image"]["caption"][0]["text"]["content"] == "A"

    def test_uploaded_image(self, renderer):
        block = renderer.render_block(
            MediaRef(media_type="image", locator="file_upload:abc123")
        )
        assert block["image"]["type"] == "file_upload"
        assert block["image"]["file_upload"] == {"id": "abc123"}
        assert block["image"]["caption"] == []

    def test_paragraph(self, renderer):
        block = renderer.render_block(Paragraph([Span(content="p")]))
        assert block["type"] == "paragraph"

    def test_unknown_block_rejected(self, renderer):
        with pytest.raises(TypeError):
            renderer.render_block("not a block")
