from __future__ import annotations

import re
import xml.etree.ElementTree as etree
from dataclasses import dataclass
from typing import Optional

import jinja2
import markdown
from markdown.blockprocessors import BlockProcessor
from markdown.extensions import Extension
from markdown.inlinepatterns import InlineProcessor
from pygments.formatters import HtmlFormatter

from .config import HighlightThemeCss, MarkdownConfig
from .content import ContentItem, count_words, reading_time
from .shortcodes import ShortcodeExtension
from .utils import strip_tags

SUMMARY_MARKER = "<!-- more -->"
HIGHLIGHT_CLASS = "highlight"
FOOTNOTE_DEF_RE = re.compile(r"^\[\^(?P<label>[^\]\s]+)\]:[ \t]*(?P<text>.*)", re.DOTALL)
FOOTNOTE_REF_RE = r"\[\^(?P<label>[^\]\s]+)\](?!:)"
WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class RenderedContent:
    html: str
    summary: Optional[str]
    toc: str
    text: str
    word_count: int
    reading_time: int


class InlineFootnoteBlockProcessor(BlockProcessor):
    """Render ``[^label]: text`` definitions where they are written."""

    def __init__(self, parser, extension: "InlineFootnotesExtension"):
        super().__init__(parser)
        self.extension = extension

    def test(self, parent, block):
        return bool(FOOTNOTE_DEF_RE.match(block))

    def run(self, parent, blocks):
        match = FOOTNOTE_DEF_RE.match(blocks.pop(0))
        label = match.group("label")
        lines = [match.group("text")]
        while blocks and blocks[0].startswith(" " * 4):
            lines.append("")
            lines.append(self.detab(blocks.pop(0))[0])
        number = self.extension.number_for(label)
        div = etree.SubElement(parent, "div")
        div.set("class", "footnote-definition")
        div.set("id", label)
        sup = etree.SubElement(div, "sup")
        sup.set("class", "footnote-definition-label")
        sup.text = str(number)
        self.parser.parseChunk(div, "\n".join(lines))
        return True


class InlineFootnoteReferenceProcessor(InlineProcessor):
    def __init__(self, pattern, md, extension: "InlineFootnotesExtension"):
        super().__init__(pattern, md)
        self.extension = extension

    def handleMatch(self, m, data):
        label = m.group("label")
        if label not in self.extension.numbers:
            return None, None, None
        sup = etree.Element("sup")
        sup.set("class", "footnote-reference")
        link = etree.SubElement(sup, "a")
        link.set("href", f"#{label}")
        link.text = str(self.extension.numbers[label])
        return sup, m.start(0), m.end(0)


class InlineFootnotesExtension(Extension):
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.numbers: dict[str, int] = {}

    def number_for(self, label: str) -> int:
        if label not in self.numbers:
            self.numbers[label] = len(self.numbers) + 1
        return self.numbers[label]

    def reset(self) -> None:
        self.numbers = {}

    def extendMarkdown(self, md):
        md.registerExtension(self)
        md.parser.blockprocessors.register(InlineFootnoteBlockProcessor(md.parser, self), "inline_footnote", 17)
        md.inlinePatterns.register(
            InlineFootnoteReferenceProcessor(FOOTNOTE_REF_RE, md, self), "inline_footnote_ref", 175
        )


def create_markdown(config: MarkdownConfig, extensions: tuple = ()) -> markdown.Markdown:
    names: list = ["fenced_code", "tables", "toc"]
    extension_configs: dict = {"toc": {"toc_depth": "1-6"}}
    if config.highlight_code:
        names.append("codehilite")
        extension_configs["codehilite"] = {
            "css_class": HIGHLIGHT_CLASS,
            "guess_lang": False,
            "use_pygments": True,
        }
    if config.footnotes == "end":
        names.append("footnotes")
    else:
        names.append(InlineFootnotesExtension())
    if config.smart_punctuation:
        names.append("smarty")
    names.extend(extensions)
    return markdown.Markdown(extensions=names, extension_configs=extension_configs)


def render_markdown(text: str, config: MarkdownConfig) -> str:
    """Render a Markdown fragment without shortcodes (used by the template filter)."""
    return create_markdown(config).convert(text)


def render_item(
    item: ContentItem,
    config: MarkdownConfig,
    env: jinja2.Environment,
    context: Optional[dict] = None,
) -> RenderedContent:
    """Render an item's body: shortcodes first, then Markdown.

    Raises ContentError (with the item's path) for unknown or failing
    shortcodes.
    """
    md = create_markdown(config, (ShortcodeExtension(env, item.source, context),))
    html_content = md.convert(item.body)
    toc_html = getattr(md, "toc", "")
    summary = None
    if SUMMARY_MARKER in html_content:
        summary = html_content.split(SUMMARY_MARKER, 1)[0].rstrip()
    text = WHITESPACE_RE.sub(" ", strip_tags(html_content)).strip()
    words = count_words(text)
    return RenderedContent(
        html=html_content,
        summary=summary,
        toc=toc_html,
        text=text,
        word_count=words,
        reading_time=reading_time(words),
    )


def highlight_css(theme: HighlightThemeCss) -> str:
    return HtmlFormatter(style=theme.theme).get_style_defs(f".{HIGHLIGHT_CLASS}") + "\n"
