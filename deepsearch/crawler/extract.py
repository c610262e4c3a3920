"""Main readable-text extraction from HTML pages."""

import re
from dataclasses import dataclass

from bs4 import BeautifulSoup

BOILERPLATE_TAGS = (
    "script",
    "style",
    "noscript",
    "template",
    "nav",
    "header",
    "footer",
    "aside",
    "form",
    "iframe",
    "svg",
    "button",
)

BOILERPLATE_ROLES = ("navigation", "banner", "contentinfo", "complementary", "search")

HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")

# Below this many characters an <article>/<main> is probably a teaser, not the page body
MIN_MAIN_CHARS = 200


@dataclass
class ExtractedPage:
    """Readable text pulled out of a page."""

    title: str
    text: str


class ExtractionError(Exception):
    """Raised when a page has no usable readable text."""


def is_html(content_type: str) -> bool:
    """Whether a Content-Type header denotes an HTML document."""
    mime = content_type.split(";", 1)[0].strip().lower()
    return mime in HTML_CONTENT_TYPES


def normalize_text(text: str) -> str:
    """Collapse runs of whitespace while keeping paragraph breaks."""
    text = text.replace("\xa0", " ")
    text = re.sub(r"\r\n?", "\n", text)
    text = re.sub(r"[ \t\f\v]+", " ", text)
    text = re.sub(r" *\n *", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def truncate(text: str, max_chars: int) -> str:
    if max_chars <= 0 or len(text) <= max_chars:
        return text
    return text[:max_chars] + "..."


def extract_readable_text(html: str, *, max_chars: int = 0) -> ExtractedPage:
    """Strip navigation and boilerplate from an HTML document and return its main text.

    Args:
        html: Raw HTML document
        max_chars: Clip the text to this many characters (0 disables clipping)

    Returns:
        Page title and normalized body text

    Raises:
        ExtractionError: If nothing readable is left
    """
    soup = BeautifulSoup(html, "html.parser")

    title = normalize_text(soup.title.get_text()) if soup.title else ""

    for tag in soup(BOILERPLATE_TAGS):
        tag.decompose()
    for tag in soup.find_all(attrs={"role": list(BOILERPLATE_ROLES)}):
        tag.decompose()

    root = soup.body or soup
    for candidate in (soup.find("article"), soup.find("main")):
        if candidate is not None and len(candidate.get_text(strip=True)) >= MIN_MAIN_CHARS:
            root = candidate
            break

    text = normalize_text(root.get_text("\n"))
    if not text:
        raise ExtractionError("empty body")

    return ExtractedPage(title=title, text=truncate(text, max_chars))
