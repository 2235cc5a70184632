"""
Tests for static HTML structure extraction.
"""

import pytest
from bs4.builder import ParserRejectedMarkup

from sitecrawl.features.crawl.services import html_analyzer
from sitecrawl.platform.exceptions import ContentError


def soup_of(markup):
    return html_analyzer.parse_html(markup)


def reject_markup(markup, features):
    raise ParserRejectedMarkup("markup could not be decoded")


class TestParseHTML:
    def test_rejected_markup_raises_content_error(self, monkeypatch):
        monkeypatch.setattr(html_analyzer, "BeautifulSoup", reject_markup)

        with pytest.raises(ContentError, match="failed to parse HTML: markup could not be decoded"):
            html_analyzer.parse_html("<html></html>")


class TestTitleAndHeadings:
    def test_title_is_trimmed(self):
        soup = soup_of("<html><head><title>\n  Example Domain  </title></head></html>")
        assert html_analyzer.extract_title(soup) == "Example Domain"

    def test_missing_title_is_empty(self):
        assert html_analyzer.extract_title(soup_of("<p>no head</p>")) == ""

    def test_heading_counts(self):
        soup = soup_of("<h1>a</h1><h1>b</h1><h2>c</h2><section><h6>d</h6></section>")

        assert html_analyzer.count_headings(soup) == {
            "h1": 2, "h2": 1, "h3": 0, "h4": 0, "h5": 0, "h6": 1,
        }


class TestLoginDetection:
    def test_password_field_and_keyword(self):
        soup = soup_of(
            '<form><input type="text" name="user"><input type="PASSWORD">'
            "<button>Sign   In</button></form>"
        )
        assert html_analyzer.detect_login_form(soup) is True

    def test_password_without_keyword(self):
        soup = soup_of('<form><input type="password"><button>Change password</button></form>')
        assert html_analyzer.detect_login_form(soup) is False

    def test_keyword_without_password(self):
        soup = soup_of("<form><input type='email'><button>Log in</button></form>")
        assert html_analyzer.detect_login_form(soup) is False


class TestCollectLinks:
    def test_classifies_internal_and_external(self):
        soup = soup_of(
            '<a href="/about">About</a>'
            '<a href="https://example.com/contact">Contact</a>'
            '<a href="https://other.org/">Other</a>'
            '<a href="javascript:void(0)">JS</a>'
            '<a href="mailto:team@example.com">Mail</a>'
        )

        links = html_analyzer.collect_links(soup, "https://example.com/home")

        assert links.internal == ["https://example.com/about", "https://example.com/contact"]
        assert links.external == ["https://other.org/"]

    def test_fragments_and_duplicates_collapse(self):
        soup = soup_of(
            '<a href="/docs#intro">a</a><a href="/docs#usage">b</a>'
            '<a href="https://example.com/docs">c</a><a href="#top">d</a>'
        )

        links = html_analyzer.collect_links(soup, "https://example.com/docs")

        assert links.internal == ["https://example.com/docs"]
        assert links.external == []

    def test_relative_links_resolve_against_page_path(self):
        soup = soup_of('<a href="guide">Guide</a>')

        links = html_analyzer.collect_links(soup, "https://example.com/docs/index.html")

        assert links.all == ["https://example.com/docs/guide"]

    def test_reference_classification(self):
        soup = soup_of(
            '<a href="/y">y</a><a href="https://a.com/z">z</a>'
            '<a href="https://b.com">b</a><a href="javascript:void(0)">js</a>'
        )

        links = html_analyzer.collect_links(soup, "https://a.com/x")

        assert len(links.internal) == 2
        assert len(links.external) == 1
