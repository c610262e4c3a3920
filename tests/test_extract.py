"""Tests for readable-text extraction."""

import pytest

from deepsearch.crawler.extract import ExtractionError, extract_readable_text, is_html, normalize_text

from conftest import ARTICLE_HTML


class TestExtractReadableText:
    """Tests for extract_readable_text."""

    def test_prefers_article_and_drops_boilerplate(self):
        """Test that navigation and footer text are removed."""
        page = extract_readable_text(ARTICLE_HTML)

        assert page.title == "Example article"
        assert "quick brown fox" in page.text
        assert "Home | About" not in page.text
        assert "Copyright" not in page.text

    def test_scripts_and_styles_removed(self):
        """Test that script and style contents never leak into the text."""
        html = "<html><body><script>var x = 1;</script><style>p {}</style><p>Visible text</p></body></html>"

        page = extract_readable_text(html)

        assert page.text == "Visible text"

    def test_short_article_falls_back_to_body(self):
        """Test that a teaser-sized article does not hide the rest of the body."""
        html = "<html><body><article>Teaser</article><p>Main body paragraph</p></body></html>"

        page = extract_readable_text(html)

        assert "Teaser" in page.text
        assert "Main body paragraph" in page.text

    def test_max_chars_truncates(self):
        """Test that long text is clipped."""
        html = "<html><body><p>" + "word " * 200 + "</p></body></html>"

        page = extract_readable_text(html, max_chars=50)

        assert len(page.text) == 53
        assert page.text.endswith("...")

    def test_only_boilerplate_raises(self):
        """Test that a page without readable text raises ExtractionError."""
        with pytest.raises(ExtractionError, match="empty body"):
            extract_readable_text("<html><body><nav>Menu</nav><script>x()</script></body></html>")


class TestHelpers:
    """Tests for content-type and whitespace helpers."""

    @pytest.mark.parametrize(
        ("content_type", "expected"),
        [
            ("text/html", True),
            ("text/html; charset=utf-8", True),
            ("application/xhtml+xml", True),
            ("application/json", False),
            ("", False),
        ],
    )
    def test_is_html(self, content_type, expected):
        """Test HTML content type detection."""
        assert is_html(content_type) is expected

    def test_normalize_text_keeps_paragraphs(self):
        """Test that whitespace runs collapse but paragraph breaks survive."""
        assert normalize_text("  a \t b\n\n\n\n c\xa0d  ") == "a b\n\nc d"
