"""Shared fixtures: small sites written into tmp_path."""

import textwrap
from pathlib import Path

import pytest

BLOG_CONFIG = """
base_url = "https://example.com"
title = "Test Blog"
description = "Notes and posts"
generate_feeds = true
feed_filenames = ["atom.xml", "rss.xml"]
build_search_index = true

taxonomies = [
    { name = "tags", feed = true },
    { name = "categories" },
]

[markdown]
highlight_code = true
highlight_theme = "monokai"

[search]
index_format = "elasticlunr_json"

[extra]
menu = [
    { name = "About", url = "/about/", weight = 2 },
    { name = "Posts", url = "/posts/", weight = 1 },
]
socials = [
    { name = "GitHub", url = "https://github.com/example", icon = "github" },
]
"""

BLOG_CONTENT = {
    "_index.md": """
        +++
        title = "Home"
        +++
        Welcome to the blog.
        """,
    "about.md": """
        +++
        title = "About"
        +++
        Just a page without a date.
        """,
    "posts/_index.md": """
        +++
        title = "Posts"
        sort_by = "date"
        paginate_by = 2
        +++
        """,
    "posts/2024-01-05-first.md": """
        +++
        title = "First post"
        [taxonomies]
        tags = ["Rust"]
        categories = ["Programming"]
        +++
        Hello from the first post.

        <!-- more -->

        The rest of it.
        """,
    "posts/second.md": """
        ---
        title: Second post
        date: 2024-02-10
        taxonomies:
          tags: [rust, Python]
        ---
        Second body with some python words.
        """,
    "posts/third.md": """
        +++
        title = "Third post"
        date = 2024-03-15
        aliases = ["/old/third/"]
        +++
        A post nobody tagged.
        """,
    "posts/secret.md": """
        +++
        title = "Secret draft"
        date = 2024-04-01
        draft = true
        [taxonomies]
        tags = ["Hidden"]
        +++
        unpublishedword appears only here.
        """,
}


def write(root: Path, rel: str, text: str) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text).lstrip("\n"), encoding="utf-8")
    return path


class SiteFactory:
    def __init__(self, root: Path):
        self.root = root
        (root / "content").mkdir(parents=True, exist_ok=True)

    def config(self, text: str, name: str = "config.toml") -> Path:
        return write(self.root, name, text)

    def content(self, rel: str, text: str) -> Path:
        return write(self.root / "content", rel, text)

    def file(self, rel: str, text: str) -> Path:
        return write(self.root, rel, text)

    @property
    def public(self) -> Path:
        return self.root / "public"


@pytest.fixture
def site(tmp_path):
    """An empty site with a content/ directory and no config yet."""
    return SiteFactory(tmp_path / "site")


@pytest.fixture
def blog(site):
    """A small blog with posts, a draft, tags and categories."""
    site.config(BLOG_CONFIG)
    for rel, text in BLOG_CONTENT.items():
        site.content(rel, text)
    return site


@pytest.fixture
def blog_config():
    return BLOG_CONFIG
