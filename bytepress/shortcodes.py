"""Shortcode directives embedded in Markdown bodies.

Two forms are recognised::

    {{ youtube(id="dQw4w9WgXcQ", autoplay=true) }}

    {% callout(kind="warning", title="Heads up") %}
    Body text, handed to the template as ``body``.
    {% end %}

``{{/* ... */}}`` and ``{%/* ... */%}`` produce the directive text literally.
Directives inside fenced code blocks are left alone.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Callable, Optional

import jinja2
from markdown import Markdown
from markdown.extensions import Extension
from markdown.preprocessors import Preprocessor

from .errors import BuildError, ContentError

NAME = r"(?P<name>[A-Za-z_][\w-]*)"
INLINE_RE = re.compile(r"\{\{\s*" + NAME + r"\((?P<args>.*?)\)\s*\}\}", re.DOTALL)
BLOCK_START_RE = re.compile(r"\{%\s*" + NAME + r"\((?P<args>.*?)\)\s*%\}", re.DOTALL)
BLOCK_END_RE = re.compile(r"\{%\s*end\s*%\}")
ESCAPED_INLINE_RE = re.compile(r"\{\{/\*\s*(?P<inner>.*?)\s*\*/\}\}", re.DOTALL)
ESCAPED_BLOCK_RE = re.compile(r"\{%/\*\s*(?P<inner>.*?)\s*\*/%\}", re.DOTALL)
FENCE_RE = re.compile(r"^(?P<indent>[ \t]*)(`{3,}|~{3,})")
NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?")
KEY_RE = re.compile(r"\s*(?P<key>[A-Za-z_]\w*)\s*=\s*")
ESCAPE_TOKEN = "\x07sc{}\x07"


class ArgumentError(ValueError):
    pass


class _ArgParser:
    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def skip_ws(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1

    def parse(self) -> dict:
        args: dict[str, Any] = {}
        self.skip_ws()
        while self.pos < len(self.text):
            match = KEY_RE.match(self.text, self.pos)
            if not match:
                raise ArgumentError(f"expected key=value at {self.text[self.pos:]!r}")
            key = match.group("key")
            if key in args:
                raise ArgumentError(f"duplicate argument {key!r}")
            self.pos = match.end()
            args[key] = self.value()
            self.skip_ws()
            if self.pos < len(self.text):
                if self.text[self.pos] != ",":
                    raise ArgumentError(f"expected ',' at {self.text[self.pos:]!r}")
                self.pos += 1
                self.skip_ws()
        return args

    def value(self) -> Any:
        self.skip_ws()
        if self.pos >= len(self.text):
            raise ArgumentError("missing value")
        char = self.text[self.pos]
        if char in "\"'`":
            end = self.text.find(char, self.pos + 1)
            if end < 0:
                raise ArgumentError("unterminated string")
            value = self.text[self.pos + 1 : end]
            self.pos = end + 1
            return value
        if char == "[":
            self.pos += 1
            items = []
            self.skip_ws()
            while self.pos < len(self.text) and self.text[self.pos] != "]":
                items.append(self.value())
                self.skip_ws()
                if self.pos < len(self.text) and self.text[self.pos] == ",":
                    self.pos += 1
                    self.skip_ws()
            if self.pos >= len(self.text):
                raise ArgumentError("unterminated array")
            self.pos += 1
            return items
        for literal, value in (("true", True), ("false", False)):
            if self.text.startswith(literal, self.pos):
                self.pos += len(literal)
                return value
        match = NUMBER_RE.match(self.text, self.pos)
        if match:
            self.pos = match.end()
            number = match.group(0)
            if any(c in number for c in ".eE"):
                return float(number)
            return int(number)
        raise ArgumentError(f"invalid value at {self.text[self.pos:]!r}")


def parse_args(text: str) -> dict:
    """Parse ``key="v", n=1, flag=true, items=[1, 2]`` into a dict."""
    return _ArgParser(text).parse()


def split_fenced(text: str) -> list[tuple[bool, str]]:
    """Split text into (is_code, chunk) runs on fenced code boundaries."""
    chunks: list[tuple[bool, str]] = []
    current: list[str] = []
    in_fence = False
    fence_marker = ""
    for line in text.split("\n"):
        fence_match = FENCE_RE.match(line)
        if fence_match:
            marker = fence_match.group(2)
            if not in_fence:
                if current:
                    chunks.append((False, "\n".join(current)))
                current = [line]
                in_fence = True
                fence_marker = marker
                continue
            if marker[0] == fence_marker[0] and len(marker) >= len(fence_marker):
                current.append(line)
                chunks.append((True, "\n".join(current)))
                current = []
                in_fence = False
                fence_marker = ""
                continue
        current.append(line)
    if current:
        chunks.append((in_fence, "\n".join(current)))
    return chunks


class ShortcodeRenderer:
    def __init__(
        self,
        env: jinja2.Environment,
        source: Path,
        context: Optional[dict] = None,
        stash: Optional[Callable[[str], str]] = None,
    ):
        self.env = env
        self.source = source
        self.context = context or {}
        self.stash = stash or (lambda html: html)
        self.invocations: dict[str, int] = {}

    def _template(self, name: str) -> tuple[jinja2.Template, bool]:
        for suffix, is_markdown in ((".html", False), (".md", True)):
            try:
                return self.env.get_template(f"shortcodes/{name}{suffix}"), is_markdown
            except jinja2.TemplateNotFound:
                continue
        raise ContentError(self.source, f"Unknown shortcode '{name}'.")

    def render(self, name: str, raw_args: str, body: Optional[str] = None) -> tuple[str, bool]:
        try:
            args = parse_args(raw_args)
        except ArgumentError as exc:
            raise ContentError(self.source, f"Shortcode '{name}': {exc}") from exc
        template, is_markdown = self._template(name)
        self.invocations[name] = self.invocations.get(name, 0) + 1
        context = dict(self.context)
        context.update(args)
        context["nth"] = self.invocations[name]
        if body is not None:
            context["body"] = body
        try:
            output = template.render(**context)
        except jinja2.TemplateError as exc:
            raise ContentError(self.source, f"Shortcode '{name}' failed: {exc}") from exc
        except BuildError:
            raise
        except Exception as exc:
            raise ContentError(self.source, f"Shortcode '{name}' failed: {type(exc).__name__}: {exc}") from exc
        return output, is_markdown

    def _emit(self, output: str, is_markdown: bool, block: bool) -> str:
        if is_markdown:
            return output
        placeholder = self.stash(output)
        if block:
            return f"\n\n{placeholder}\n\n"
        return placeholder

    def expand(self, text: str) -> str:
        escaped: list[str] = []

        def protect(template: str) -> Callable[[re.Match], str]:
            def repl(match: re.Match) -> str:
                escaped.append(template.format(match.group("inner")))
                return ESCAPE_TOKEN.format(len(escaped) - 1)

            return repl

        parts = []
        for is_code, chunk in split_fenced(text):
            if is_code:
                parts.append(chunk)
                continue
            chunk = ESCAPED_INLINE_RE.sub(protect("{{{{ {} }}}}"), chunk)
            chunk = ESCAPED_BLOCK_RE.sub(protect("{{% {} %}}"), chunk)
            chunk = self._expand_blocks(chunk)
            chunk = INLINE_RE.sub(
                lambda m: self._emit(*self.render(m.group("name"), m.group("args")), block=False), chunk
            )
            parts.append(chunk)
        result = "\n".join(parts)
        for idx, literal in enumerate(escaped):
            result = result.replace(ESCAPE_TOKEN.format(idx), literal)
        return result

    def _expand_blocks(self, text: str) -> str:
        out = []
        pos = 0
        while True:
            start = BLOCK_START_RE.search(text, pos)
            if not start:
                out.append(text[pos:])
                break
            end = BLOCK_END_RE.search(text, start.end())
            if not end:
                raise ContentError(self.source, f"Shortcode '{start.group('name')}' is missing {{% end %}}.")
            out.append(text[pos : start.start()])
            body = text[start.end() : end.start()].strip("\n")
            output, is_markdown = self.render(start.group("name"), start.group("args"), body)
            out.append(self._emit(output, is_markdown, block=True))
            pos = end.end()
        return "".join(out)


class ShortcodePreprocessor(Preprocessor):
    def __init__(self, md: Markdown, env: jinja2.Environment, source: Path, context: dict):
        super().__init__(md)
        self.renderer = ShortcodeRenderer(env, source, context, stash=md.htmlStash.store)

    def run(self, lines: list[str]) -> list[str]:
        return self.renderer.expand("\n".join(lines)).split("\n")


class ShortcodeExtension(Extension):
    def __init__(self, env: jinja2.Environment, source: Path, context: Optional[dict] = None, **kwargs):
        super().__init__(**kwargs)
        self.env = env
        self.source = source
        self.context = context or {}

    def extendMarkdown(self, md: Markdown) -> None:
        md.preprocessors.register(
            ShortcodePreprocessor(md, self.env, self.source, self.context),
            "shortcodes",
            29,
        )
