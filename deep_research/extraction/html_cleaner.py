"""HTML cleaning and text extraction utilities.

Removes navigation, headers, footers and other non-content elements so the
fact extractor sees article text only.
"""

from bs4 import BeautifulSoup
from typing import Optional, Tuple

_NON_CONTENT = ["nav", "header", "footer", "aside", "script", "style", "noscript", "form", "iframe", "svg"]


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def clean_html_to_text(html: str) -> str:
    """
    Extract clean text from HTML, removing navigation and non-content elements.

    Args:
        html: Raw HTML string

    Returns:
        Clean text with one paragraph per line
    """
    return extract_title_and_text(html)[1]


def extract_title_and_text(html: str) -> Tuple[Optional[str], str]:
    """Return the page title (if any) and its cleaned body text."""
    if not html:
        return None, ""

    soup = _soup(html)

    title = None
    if soup.title and soup.title.string:
        title = " ".join(soup.title.string.split()) or None
    if title is None:
        og = soup.find("meta", attrs={"property": "og:title"})
        if og and og.get("content"):
            title = og["content"].strip() or None

    for tag in soup(_NON_CONTENT):
        tag.decompose()

    # Table-of-contents lists
    for tag in soup.find_all(["ul", "ol"]):
        classes = tag.get("class") or []
        tag_id = tag.get("id") or ""
        if any("toc" in str(c).lower() for c in classes) or "toc" in tag_id.lower() or "contents" in tag_id.lower():
            tag.decompose()

    for tag in soup.find_all(attrs={"role": "navigation"}):
        tag.decompose()

    root = soup.find("article") or soup.find("main") or soup.body or soup
    text = root.get_text("\n", strip=True)

    lines = []
    for line in text.splitlines():
        cleaned = " ".join(line.split())
        if len(cleaned) > 2:  # Skip very short lines
            lines.append(cleaned)

    return title, "\n".join(lines)
