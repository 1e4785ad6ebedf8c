"""Tests for shortcode parsing and expansion."""

from pathlib import Path

import jinja2
import pytest

from bytepress.config import MarkdownConfig, SiteConfig
from bytepress.content import ContentItem
from bytepress.errors import ContentError
from bytepress.markup import render_item
from bytepress.shortcodes import ArgumentError, ShortcodeRenderer, parse_args, split_fenced
from bytepress.templates import create_environment

TEMPLATES = {
    "shortcodes/youtube.html": '<iframe src="https://www.youtube.com/embed/{{ id }}"></iframe>',
    "shortcodes/note.html": '<aside class="note">{{ body }}</aside>',
    "shortcodes/counter.html": "[{{ nth }}]",
    "shortcodes/quote.md": "> {{ body }}\n> -- {{ author }}",
    "shortcodes/broken.html": "{{ missing.attribute.here }}",
}


@pytest.fixture
def renderer():
    env = jinja2.Environment(loader=jinja2.DictLoader(TEMPLATES), undefined=jinja2.StrictUndefined)
    return ShortcodeRenderer(env, Path("content/post.md"))


# ============================================================
# Argument parsing
# ============================================================


class TestParseArgs:
    def test_value_types(self):
        args = parse_args('title="Hi", alt=\'x\', code=`y`, n=3, ratio=1.5, on=true, off=false, ids=[1, "two"]')
        assert args == {
            "title": "Hi",
            "alt": "x",
            "code": "y",
            "n": 3,
            "ratio": 1.5,
            "on": True,
            "off": False,
            "ids": [1, "two"],
        }

    def test_empty(self):
        assert parse_args("") == {}
        assert parse_args("   ") == {}

    def test_negative_number(self):
        assert parse_args("offset=-2") == {"offset": -2}

    @pytest.mark.parametrize(
        "text",
        ['title="unterminated', "title", "a=1 b=2", "a=1, a=2", "ids=[1, 2", "a=maybe"],
    )
    def test_invalid(self, text):
        with pytest.raises(ArgumentError):
            parse_args(text)


class TestSplitFenced:
    def test_code_runs_marked(self):
        text = "before\n```python\n{{ x() }}\n```\nafter"
        assert split_fenced(text) == [
            (False, "before"),
            (True, "```python\n{{ x() }}\n```"),
            (False, "after"),
        ]

    def test_unclosed_fence_runs_to_end(self):
        assert split_fenced("~~~\ncode") == [(True, "~~~\ncode")]


# ============================================================
# Expansion
# ============================================================


class TestShortcodeRenderer:
    def test_inline(self, renderer):
        out = renderer.expand('Watch: {{ youtube(id="abc") }}')
        assert out == 'Watch: <iframe src="https://www.youtube.com/embed/abc"></iframe>'

    def test_block_receives_body(self, renderer):
        out = renderer.expand('{% note() %}\nCareful now.\n{% end %}')
        assert '<aside class="note">Careful now.</aside>' in out

    def test_markdown_shortcode(self, renderer):
        out = renderer.expand('{% quote(author="Ada") %}\nNumbers.\n{% end %}')
        assert "> Numbers.\n> -- Ada" in out

    def test_escaped_directives_are_literal(self, renderer):
        out = renderer.expand('{{/* youtube(id="abc") */}} and {%/* note() */%}')
        assert out == '{{ youtube(id="abc") }} and {% note() %}'

    def test_fenced_code_untouched(self, renderer):
        text = '```\n{{ youtube(id="abc") }}\n```'
        assert renderer.expand(text) == text

    def test_invocation_counter(self, renderer):
        assert renderer.expand("{{ counter() }} {{ counter() }}") == "[1] [2]"

    def test_unknown_shortcode(self, renderer):
        with pytest.raises(ContentError) as exc_info:
            renderer.expand("{{ nope() }}")
        assert exc_info.value.path == Path("content/post.md")
        assert "nope" in str(exc_info.value)

    def test_bad_arguments(self, renderer):
        with pytest.raises(ContentError, match="youtube"):
            renderer.expand("{{ youtube(id=) }}")

    def test_failing_template(self, renderer):
        with pytest.raises(ContentError, match="broken"):
            renderer.expand("{{ broken() }}")

    def test_missing_end(self, renderer):
        with pytest.raises(ContentError, match="end"):
            renderer.expand("{% note() %}\nno end here")


class TestShortcodesInMarkdown:
    def test_builtin_callout(self, tmp_path):
        config = SiteConfig(base_url="https://example.com")
        env = create_environment(tmp_path, config)
        item = ContentItem(
            source=tmp_path / "content" / "post.md",
            rel_path="post.md",
            kind="page",
            title="Post",
            url_path="/post/",
            section_dir="",
            body='Intro.\n\n{% callout(kind="warning", title="Heads up") %}\nMind the **gap**.\n{% end %}\n\nOutro.',
        )
        rendered = render_item(item, MarkdownConfig(), env)
        assert '<div class="callout callout-warning">' in rendered.html
        assert '<p class="callout-title">Heads up</p>' in rendered.html
        assert "<strong>gap</strong>" in rendered.html
        assert "<p>Outro.</p>" in rendered.html

    def test_site_shortcode_overrides_builtin(self, tmp_path):
        (tmp_path / "templates" / "shortcodes").mkdir(parents=True)
        (tmp_path / "templates" / "shortcodes" / "callout.html").write_text("<b>mine</b>", encoding="utf-8")
        env = create_environment(tmp_path, SiteConfig(base_url="https://example.com"))
        item = ContentItem(
            source=tmp_path / "content" / "post.md",
            rel_path="post.md",
            kind="page",
            title="Post",
            url_path="/post/",
            section_dir="",
            body="{{ callout() }}",
        )
        assert "<b>mine</b>" in render_item(item, MarkdownConfig(), env).html
