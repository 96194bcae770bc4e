"""
Python-Markdown extension that gives every heading a stable anchor.

The built-in ``toc`` extension deduplicates with ``_1`` and renders its own
permalink markup; the reader wants ``-1`` suffixes and a trailing ``#``
permalink inside the heading, so it carries its own treeprocessor.
"""

import html
import re
import unicodedata
import xml.etree.ElementTree as etree
from typing import Set

from markdown.extensions import Extension
from markdown.extensions.toc import remove_fnrefs, render_inner_html, strip_tags
from markdown.treeprocessors import Treeprocessor

HEADING_TAGS = {'h1', 'h2', 'h3', 'h4', 'h5', 'h6'}
PERMALINK_CLASS = "header-anchor"
PERMALINK_SYMBOL = "#"
FALLBACK_SLUG = "section"

_DISALLOWED = re.compile(r'[^a-z0-9\- ]')
_WHITESPACE = re.compile(r'\s+')


def slugify(text: str) -> str:
    """
    Turn heading text into an id-safe token.

    Accents are folded to ASCII first, then everything outside
    ``[a-z0-9- ]`` is dropped and each whitespace run becomes one hyphen.
    Returns ``"section"`` when nothing is left.
    """
    folded = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    slug = _DISALLOWED.sub('', folded.lower())
    slug = _WHITESPACE.sub('-', slug.strip())
    slug = slug.strip('-')
    return slug or FALLBACK_SLUG


def unique_slug(slug: str, used: Set[str]) -> str:
    """Return ``slug`` or the first free ``slug-N`` (N = 1, 2, ...)."""
    if slug not in used:
        return slug
    n = 1
    while f"{slug}-{n}" in used:
        n += 1
    return f"{slug}-{n}"


class HeadingAnchorTreeprocessor(Treeprocessor):
    """Assign ids to headings and append a permalink to each."""

    def heading_text(self, el: etree.Element) -> str:
        # Footnote markers are not part of the heading's name
        inner = render_inner_html(remove_fnrefs(el), self.md)
        return html.unescape(strip_tags(inner)).strip()

    def run(self, root: etree.Element) -> None:
        used: Set[str] = set()
        for el in root.iter():
            if el.tag not in HEADING_TAGS:
                continue

            explicit = el.get('id')
            if explicit and explicit not in used:
                anchor_id = explicit
            else:
                anchor_id = unique_slug(slugify(self.heading_text(el)), used)
            used.add(anchor_id)
            el.set('id', anchor_id)

            # Separate the glyph from the heading text
            if len(el):
                el[-1].tail = (el[-1].tail or '') + ' '
            else:
                el.text = (el.text or '') + ' '

            permalink = etree.SubElement(el, 'a')
            permalink.set('class', PERMALINK_CLASS)
            permalink.set('href', f"#{anchor_id}")
            permalink.set('aria-hidden', 'true')
            permalink.text = PERMALINK_SYMBOL


class HeadingAnchorExtension(Extension):
    def extendMarkdown(self, md):
        # After inline (20) and attr_list (8) so heading text and {#id} are final
        md.treeprocessors.register(HeadingAnchorTreeprocessor(md), 'heading_anchor', 6)
        md.registerExtension(self)


def makeExtension(**kwargs):
    return HeadingAnchorExtension(**kwargs)
