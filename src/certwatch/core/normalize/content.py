"""
Content normalization.

Strips scripts, styles, media and comments from raw page content and
collapses whitespace so that the same page always normalizes to the
same text. The normalized form feeds both change detection and
extraction.
"""

from __future__ import annotations

import re

from lxml import etree
from lxml import html as lxml_html

# Subtrees that never carry announcement content
NOISE_TAGS = (
    "script",
    "style",
    "noscript",
    "iframe",
    "img",
    "video",
    "audio",
    "svg",
    "picture",
    "source",
    "object",
    "embed",
    "canvas",
    "template",
    "link",
    "meta",
)

# Elements that end a line in the text view
BLOCK_TAGS = (
    "p",
    "div",
    "li",
    "tr",
    "table",
    "section",
    "article",
    "header",
    "footer",
    "ul",
    "ol",
    "dl",
    "dt",
    "dd",
    "pre",
    "blockquote",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "h6",
    "title",
)

CELL_TAGS = ("td", "th")

HTML_MARKER = re.compile(
    r"<\s*(?:!doctype|html|head|body|div|table|tr|td|p|a|span|ul|li|h[1-6]|section|article)\b",
    re.IGNORECASE,
)
MARKDOWN_IMAGE = re.compile(r"!\[[^\]]*\]\([^)]*\)")
INLINE_WHITESPACE = re.compile(r"[ \t\r\f\v　\xa0]+")


def looks_like_html(content: str) -> bool:
    """Whether content is markup rather than plain text or markdown."""
    return bool(HTML_MARKER.search(content[:5000]))


def _parse(content: str) -> etree._Element | None:
    try:
        return lxml_html.document_fromstring(content)
    except (etree.ParserError, ValueError):
        return None


def _strip_noise(doc: etree._Element) -> None:
    etree.strip_elements(doc, *NOISE_TAGS, etree.Comment, etree.ProcessingInstruction, with_tail=False)


def _normalize_text(text: str) -> str:
    """Normalize plain text or markdown, keeping its line structure."""
    text = MARKDOWN_IMAGE.sub("", text)
    lines = (INLINE_WHITESPACE.sub(" ", line).strip() for line in text.splitlines())
    return "\n".join(line for line in lines if line)


def normalize(raw: str | None, *, for_model: bool = False) -> str:
    """Normalize raw page content.

    Args:
        raw: Raw HTML, markdown or text
        for_model: Drop every attribute, keeping only tag names, for
            content sent to the extraction model

    Returns:
        Normalized content ("" for empty input)
    """
    if not raw or not raw.strip():
        return ""

    if not looks_like_html(raw):
        return _normalize_text(raw)

    doc = _parse(raw)
    if doc is None:
        return _normalize_text(raw)

    _strip_noise(doc)
    for head in doc.findall("head"):
        doc.remove(head)

    if for_model:
        for element in doc.iter(tag=etree.Element):
            element.attrib.clear()

    body = doc.find("body")
    root = body if body is not None else doc
    markup = lxml_html.tostring(root, encoding="unicode")

    markup = re.sub(r"\s+", " ", markup)
    markup = re.sub(r">\s+<", "><", markup)
    return markup.strip()


def html_to_text(content: str) -> str:
    """Render content as lines of text for line-oriented parsers.

    Block elements start and end lines, table cells are separated by
    spaces. Non-markup content is returned with its lines normalized.
    """
    if not content:
        return ""

    if not looks_like_html(content):
        return _normalize_text(content)

    doc = _parse(content)
    if doc is None:
        return _normalize_text(content)

    _strip_noise(doc)

    for element in doc.iter(*BLOCK_TAGS):
        element.text = "\n" + (element.text or "")
        element.tail = "\n" + (element.tail or "")
    for element in doc.iter("br"):
        element.tail = "\n" + (element.tail or "")
    for element in doc.iter(*CELL_TAGS):
        element.tail = " " + (element.tail or "")

    return _normalize_text(doc.text_content())
