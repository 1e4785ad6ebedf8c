"""End-to-end builds of a small blog."""

import pytest

from bytepress.errors import BuildError, ContentError, TemplateRenderError
from bytepress.site import build_site, check_site


def snapshot(directory):
    return {
        path.relative_to(directory).as_posix(): path.read_bytes()
        for path in sorted(directory.rglob("*"))
        if path.is_file()
    }


def read(site, rel):
    return (site.public / rel).read_text(encoding="utf-8")


# ============================================================
# Output layout
# ============================================================


class TestBuildOutput:
    def test_expected_files(self, blog):
        build_site(blog.root)
        files = set(snapshot(blog.public))
        assert {
            "index.html",
            "404.html",
            "about/index.html",
            "posts/index.html",
            "posts/page/1/index.html",
            "posts/page/2/index.html",
            "posts/first/index.html",
            "posts/second/index.html",
            "posts/third/index.html",
            "old/third/index.html",
            "tags/index.html",
            "tags/rust/index.html",
            "tags/python/index.html",
            "categories/index.html",
            "categories/programming/index.html",
            "atom.xml",
            "rss.xml",
            "tags/rust/atom.xml",
            "sitemap.xml",
            "robots.txt",
            "search_index.en.json",
            "syntax-theme.css",
        } <= files

    def test_report_counts(self, blog):
        report = build_site(blog.root)
        assert report.output_dir == blog.public
        assert report.pages == 4
        assert report.sections == 2
        assert report.terms == 3
        assert report.files["search"] == 1
        assert report.total_files == sum(report.files.values())

    def test_page_html(self, blog):
        build_site(blog.root)
        html = read(blog, "posts/second/index.html")
        assert "<title>Second post | Test Blog</title>" in html
        assert '<link rel="canonical" href="https://example.com/posts/second/">' in html
        assert '<a href="https://example.com/tags/python/">#Python</a>' in html
        assert '<a href="https://example.com/tags/rust/">#Rust</a>' in html
        assert "Second body with some python words." in html

    def test_menu_and_socials(self, blog):
        build_site(blog.root)
        html = read(blog, "index.html")
        assert html.index(">Posts</a>") < html.index(">About</a>")
        assert 'href="https://github.com/example"' in html

    def test_pagination(self, blog):
        build_site(blog.root)
        first = read(blog, "posts/index.html")
        second = read(blog, "posts/page/2/index.html")
        assert "Third post" in first and "Second post" in first
        assert "First post" not in first
        assert "First post" in second
        assert 'href="https://example.com/posts/page/2/"' in first
        assert 'content="0; url=https://example.com/posts/"' in read(blog, "posts/page/1/index.html")

    def test_alias_redirect(self, blog):
        build_site(blog.root)
        html = read(blog, "old/third/index.html")
        assert 'content="0; url=https://example.com/posts/third/"' in html

    def test_base_url_override(self, blog):
        build_site(blog.root, base_url="http://localhost:1111")
        assert "http://localhost:1111/posts/third/" in read(blog, "sitemap.xml")

    def test_custom_output_dir(self, blog):
        report = build_site(blog.root, output_dir=blog.root / "dist")
        assert (blog.root / "dist" / "index.html").exists()
        assert report.output_dir == blog.root / "dist"

    def test_site_template_overrides_builtin(self, blog):
        blog.file("templates/page.html", "<p>custom {{ page.title }}</p>")
        build_site(blog.root)
        assert read(blog, "about/index.html") == "<p>custom About</p>"


# ============================================================
# Drafts and taxonomies
# ============================================================


class TestDrafts:
    def test_drafts_absent_everywhere(self, blog):
        build_site(blog.root)
        for rel, data in snapshot(blog.public).items():
            text = data.decode("utf-8", errors="ignore")
            assert "Secret draft" not in text, rel
            assert "unpublishedword" not in text, rel
            assert "/posts/secret/" not in text, rel
        assert not (blog.public / "tags" / "hidden").exists()

    def test_drafts_included_on_request(self, blog):
        build_site(blog.root, include_drafts=True)
        assert (blog.public / "posts" / "secret" / "index.html").exists()
        assert (blog.public / "tags" / "hidden" / "index.html").exists()

    def test_draft_section_hides_its_pages(self, blog):
        blog.content("notes/_index.md", '+++\ntitle = "Notes"\ndraft = true\n+++\n')
        blog.content("notes/idea.md", '+++\ntitle = "Idea"\n+++\n')
        build_site(blog.root)
        assert not (blog.public / "notes").exists()


class TestUntaggedItem:
    def test_listed_but_not_indexed(self, blog):
        build_site(blog.root)
        assert "Third post" in read(blog, "posts/index.html")
        for rel in ("tags/rust/index.html", "tags/python/index.html", "categories/programming/index.html"):
            assert "Third post" not in read(blog, rel)


# ============================================================
# Determinism and feature toggles
# ============================================================


class TestRebuild:
    def test_byte_identical(self, blog):
        build_site(blog.root)
        first = snapshot(blog.public)
        build_site(blog.root)
        assert snapshot(blog.public) == first

    def test_worker_count_does_not_change_output(self, blog):
        build_site(blog.root, workers=1)
        sequential = snapshot(blog.public)
        build_site(blog.root, workers=8)
        assert snapshot(blog.public) == sequential

    def test_disabling_search_removes_index(self, blog, blog_config):
        build_site(blog.root)
        assert (blog.public / "search_index.en.json").exists()
        blog.config(blog_config.replace("build_search_index = true", "build_search_index = false"))
        build_site(blog.root)
        assert not list(blog.public.glob("search_index.*"))

    def test_disabling_feeds_removes_them(self, blog, blog_config):
        build_site(blog.root)
        blog.config(blog_config.replace("generate_feeds = true", "generate_feeds = false"))
        build_site(blog.root)
        assert not (blog.public / "atom.xml").exists()
        assert not (blog.public / "tags" / "rust" / "atom.xml").exists()

    def test_stale_files_removed(self, blog):
        build_site(blog.root)
        (blog.root / "content" / "about.md").unlink()
        build_site(blog.root)
        assert not (blog.public / "about").exists()


class TestHighlightThemes:
    def test_single_theme_one_reference(self, blog):
        build_site(blog.root)
        html = read(blog, "posts/first/index.html")
        assert html.count("syntax-theme.css") == 1
        assert "data-highlight-theme" not in html
        assert sorted(p.name for p in blog.public.glob("syntax-*.css")) == ["syntax-theme.css"]

    def test_theme_pair(self, blog, blog_config):
        blog.config(
            blog_config.replace(
                'highlight_theme = "monokai"',
                'highlight_theme = "css"\n'
                "highlight_themes_css = [\n"
                '  { theme = "default", filename = "syntax-light.css" },\n'
                '  { theme = "monokai", filename = "syntax-dark.css" },\n'
                "]",
            )
        )
        build_site(blog.root)
        html = read(blog, "posts/first/index.html")
        assert 'href="https://example.com/syntax-light.css" data-highlight-theme="default"' in html
        assert 'href="https://example.com/syntax-dark.css" data-highlight-theme="monokai"' in html
        assert sorted(p.name for p in blog.public.glob("syntax-*.css")) == ["syntax-dark.css", "syntax-light.css"]


# ============================================================
# Failures
# ============================================================


class TestBuildErrors:
    def test_content_error_writes_nothing(self, blog):
        blog.content("posts/broken.md", "+++\ntitle = 'never closed'\n")
        with pytest.raises(ContentError) as exc_info:
            build_site(blog.root)
        assert exc_info.value.path.name == "broken.md"
        assert not blog.public.exists()

    def test_content_error_keeps_previous_output(self, blog):
        build_site(blog.root)
        before = snapshot(blog.public)
        blog.content("posts/broken.md", "{{ missing_shortcode() }}")
        with pytest.raises(ContentError):
            build_site(blog.root)
        assert snapshot(blog.public) == before

    def test_url_collision(self, blog):
        blog.content("posts/copy.md", '+++\ntitle = "Copy"\npath = "posts/first"\n+++\n')
        with pytest.raises(ContentError, match="/posts/first/"):
            build_site(blog.root)

    def test_section_shadowing_taxonomy_list(self, blog):
        blog.content("tags/_index.md", '+++\ntitle = "Tag notes"\n+++\nSECTION BODY')
        with pytest.raises(ContentError, match="/tags/") as exc_info:
            build_site(blog.root)
        assert exc_info.value.path.as_posix().endswith("tags/_index.md")
        assert not blog.public.exists()

    def test_alias_shadowing_term(self, blog):
        blog.content("misc.md", '+++\ntitle = "Misc"\naliases = ["/tags/rust/"]\n+++\n')
        with pytest.raises(ContentError, match="/tags/rust/") as exc_info:
            build_site(blog.root)
        assert exc_info.value.path.name == "misc.md"

    def test_page_shadowing_pager(self, blog):
        blog.content("pager.md", '+++\ntitle = "Pager"\npath = "posts/page/2"\n+++\n')
        with pytest.raises(ContentError, match="/posts/page/2/"):
            build_site(blog.root)

    def test_impossible_date_names_file(self, blog):
        blog.content("posts/bad.md", "---\ntitle: Bad\ndate: 2024-02-30\n---\n")
        with pytest.raises(ContentError) as exc_info:
            build_site(blog.root)
        assert exc_info.value.path.name == "bad.md"

    def test_template_error(self, blog):
        blog.file("templates/page.html", "{{ page.title | nosuchfilter }}")
        with pytest.raises(TemplateRenderError) as exc_info:
            build_site(blog.root)
        assert exc_info.value.template == "page.html"

    def test_template_runtime_error(self, blog):
        blog.file("templates/page.html", "{{ 1 // 0 }}")
        with pytest.raises(TemplateRenderError) as exc_info:
            build_site(blog.root)
        assert exc_info.value.template == "page.html"
        assert "ZeroDivisionError" in str(exc_info.value)

    def test_date_filter_error(self, blog):
        blog.file("templates/page.html", '{{ "not a date" | date }}')
        with pytest.raises(TemplateRenderError, match="page.html"):
            build_site(blog.root)

    def test_shortcode_runtime_error(self, blog):
        blog.file("templates/shortcodes/boom.html", "{{ 1 // 0 }}")
        blog.content("posts/loud.md", '+++\ntitle = "Loud"\n+++\n{{ boom() }}')
        with pytest.raises(ContentError, match="boom") as exc_info:
            build_site(blog.root)
        assert exc_info.value.path.name == "loud.md"

    def test_output_outside_root_refused(self, blog, tmp_path):
        outside = tmp_path / "elsewhere"
        outside.mkdir()
        with pytest.raises(BuildError):
            build_site(blog.root, output_dir=outside)
        assert outside.exists()


class TestCheckSite:
    def test_check_writes_nothing(self, blog):
        report = check_site(blog.root)
        assert report.pages == 4
        assert not blog.public.exists()

    def test_check_reports_errors(self, blog):
        blog.content("posts/broken.md", '+++\ntitle = "x"\n[taxonomies]\nauthors = ["me"]\n+++\n')
        with pytest.raises(ContentError, match="authors"):
            check_site(blog.root)
