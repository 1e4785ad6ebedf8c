"""Tests for the client-side search index."""

import json
import math

import pytest

from bytepress.config import SearchConfig
from bytepress.search import build_search_index, index_filename, search_fields, serialize_index, tokenize
from bytepress.site import prepare


def with_search(site, blog_config, block: str):
    """Rewrite the blog config's [search] block."""
    config = blog_config.replace('[search]\nindex_format = "elasticlunr_json"\n', block)
    site.config(config)
    return prepare(site.root)


class TestTokenize:
    def test_lowercases_and_drops_stop_words(self):
        assert tokenize("The Quick brown fox and THE dog") == ["quick", "brown", "fox", "dog"]


class TestElasticlunrIndex:
    def test_json_structure(self, blog):
        data = json.loads(serialize_index(prepare(blog.root)))
        assert data["ref"] == "id"
        assert data["fields"] == ["title", "body"]
        assert data["pipeline"] == ["trimmer", "stopWordFilter"]
        docs = data["documentStore"]["docs"]
        assert "https://example.com/posts/first/" in docs
        assert set(docs["https://example.com/posts/first/"]) == {"id", "title", "body"}
        assert data["documentStore"]["length"] == len(docs)

    def test_inverted_index_trie(self, blog):
        data = json.loads(serialize_index(prepare(blog.root)))
        node = data["index"]["body"]["root"]
        for char in "python":
            node = node[char]
        ref = "https://example.com/posts/second/"
        assert node["docs"][ref]["tf"] == pytest.approx(math.sqrt(1))
        assert node["df"] == len(node["docs"])

    def test_drafts_not_indexed(self, blog):
        text = serialize_index(prepare(blog.root))
        assert "unpublishedword" not in text
        assert "secret" not in text

    def test_javascript_variant(self, blog, blog_config):
        library = with_search(blog, blog_config, '[search]\nindex_format = "elasticlunr_javascript"\n')
        text = serialize_index(library)
        assert text.startswith("window.searchIndex = {")
        assert text.endswith("};\n")

    def test_implicit_sections_skipped(self, blog):
        blog.content("misc/loose.md", "# Loose\n\nNo section file here.")
        docs = json.loads(serialize_index(prepare(blog.root)))["documentStore"]["docs"]
        assert "https://example.com/misc/loose/" in docs
        assert "https://example.com/misc/" not in docs


class TestFuseIndex:
    def test_only_configured_fields(self, blog, blog_config):
        library = with_search(
            blog,
            blog_config,
            '[search]\nindex_format = "fuse_json"\ninclude_content = false\ninclude_path = true\n',
        )
        entries = json.loads(serialize_index(library))
        assert entries
        assert all(set(entry) == {"title", "path"} for entry in entries)
        assert {"title": "First post", "path": "/posts/first/"} in entries

    def test_truncated_content(self, blog, blog_config):
        library = with_search(blog, blog_config, '[search]\nindex_format = "fuse_json"\ntruncate_content_length = 5\n')
        entries = json.loads(serialize_index(library))
        assert all(len(entry["body"]) <= 5 for entry in entries)


class TestBuildSearchIndex:
    def test_file_name_follows_format_and_language(self, blog, tmp_path):
        library = prepare(blog.root)
        written = build_search_index(library, tmp_path)
        assert [path.name for path in written] == ["search_index.en.json"]

    def test_disabled_writes_nothing(self, blog, blog_config, tmp_path):
        out = tmp_path / "out"
        blog.config(blog_config.replace("build_search_index = true", "build_search_index = false"))
        assert build_search_index(prepare(blog.root), out) == []
        assert not out.exists()

    def test_helpers(self):
        config = SearchConfig(include_description=True, index_format="fuse_javascript")
        assert search_fields(config) == ["title", "description", "body"]
        assert index_filename(config, "fr") == "search_index.fr.js"
