from dataclasses import dataclass
from functools import lru_cache, partial
from typing import FrozenSet, Iterable, Optional, Tuple
from urllib.parse import urlsplit
import html as html_module
import logging
import os
import re

import markdown
from bs4 import BeautifulSoup
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .assets import AssetResolver, is_relative_reference
from .document import Document
from .markdown_ext import HEADING_TAGS, PERMALINK_CLASS, HeadingAnchorExtension, unique_slug
from .sanitizer import sanitize
from mdreader.features.registry import MATH_EXTENSION, Pipeline
from mdreader.features.toc import Heading, extract_headings

logger = logging.getLogger(__name__)

FRONT_MATTER_PATTERN = re.compile(r'\A---\r?\n(?:.*?\r?\n)?---(?:\r?\n|\Z)', re.DOTALL)

CODE_BLOCK_CLASS = "code-block"
CODE_CLASS = "highlight"
TABLE_WRAPPER_CLASS = "table-wrapper"
FALLBACK_CLASS = "render-fallback"
EXTERNAL_SCHEMES = ('http', 'https')

_MATH_DELIMITERS = re.compile(r'^\s*\\[(\[](.*)\\[)\]]\s*$', re.DOTALL)
ALERT_PATTERN = re.compile(r"^>\s*\[!(NOTE|TIP|IMPORTANT|WARNING|CAUTION)\]\s*(.*)$", re.IGNORECASE)
TOC_MARKER_PATTERN = re.compile(r"^\[TOC\]\s*$", re.MULTILINE | re.IGNORECASE)

BASE_EXTENSIONS = [
    'fenced_code',
    'footnotes',
    'attr_list',
    'def_list',
    'tables',
    'abbr',
    'md_in_html',
    'sane_lists',
    'admonition',
    'smarty',
    'pymdownx.betterem',
    'pymdownx.caret',
    'pymdownx.mark',
    'pymdownx.tilde',
    'pymdownx.details',
    'pymdownx.keys',
    'pymdownx.smartsymbols',
    'pymdownx.tasklist',
    'pymdownx.magiclink',
]


@dataclass(frozen=True)
class RenderResult:
    html: str
    headings: Tuple[Heading, ...] = ()


def strip_front_matter(md_text: str) -> str:
    """Drop a leading ``---`` delimited metadata block, if there is one."""
    return FRONT_MATTER_PATTERN.sub('', md_text, count=1)


def strip_toc_markers(md_text: str) -> str:
    # The reader builds its own table of contents
    return TOC_MARKER_PATTERN.sub('', md_text)


def convert_github_alerts(md_text: str) -> str:
    """
    Rewrite GitHub alert blockquotes as admonitions::

        > [!NOTE]              !!! note
        > Read this first.  ->     Read this first.

    The alert ends at the first line that is not quoted. Fenced code is
    left alone.
    """
    out_lines = []
    in_alert = False
    in_fence = False
    for line in md_text.split('\n'):
        if line.lstrip().startswith(('```', '~~~')):
            in_fence = not in_fence
            in_alert = False
            out_lines.append(line)
            continue
        match = None if in_fence else ALERT_PATTERN.match(line)
        if match:
            out_lines.append(f"!!! {match.group(1).lower()}")
            if match.group(2).strip():
                out_lines.append(f"    {match.group(2)}")
            in_alert = True
        elif in_alert and line.lstrip().startswith('>'):
            out_lines.append('    ' + re.sub(r'^\s*>\s?', '', line))
        else:
            in_alert = False
            out_lines.append(line)
    return '\n'.join(out_lines)


def preprocess(md_text: str) -> str:
    pipeline = Pipeline("MarkdownPreProcess")
    pipeline.add_step(strip_front_matter)
    pipeline.add_step(strip_toc_markers)
    pipeline.add_step(convert_github_alerts)
    return pipeline.run(md_text)


def build_markdown(capabilities: FrozenSet[str] = frozenset()) -> markdown.Markdown:
    extensions = list(BASE_EXTENSIONS) + [HeadingAnchorExtension()]
    extension_configs = {
        'tables': {'use_align_attribute': True},
        'pymdownx.tasklist': {'custom_checkbox': False, 'clickable_checkbox': False},
    }
    if MATH_EXTENSION in capabilities:
        extensions.append('pymdownx.arithmatex')
        extension_configs['pymdownx.arithmatex'] = {
            'generic': True,
            'inline_syntax': ['dollar'],
            'block_syntax': ['dollar'],
            'smart_dollar': True,
        }
    return markdown.Markdown(extensions=extensions, extension_configs=extension_configs)


def render_markdown(md_text: str, capabilities: FrozenSet[str] = frozenset()) -> str:
    md_instance = build_markdown(capabilities)
    logger.debug(f"Render markdown: {len(md_text)} chars input, capabilities={sorted(capabilities)}")
    return md_instance.convert(md_text)


# -------------------------------------------------------------------------
# HTML post-processing steps (operate on the soup in place)
# -------------------------------------------------------------------------
def dedupe_heading_ids(soup: BeautifulSoup) -> None:
    """
    Keep heading ids unique across the whole page.

    Raw HTML headings never pass through the markdown treeprocessor, so an
    id written by hand can repeat one generated for a markdown heading.
    The later heading in document order is renamed, along with its
    permalink. New ids avoid every id already on the page.
    """
    taken = {tag['id'] for tag in soup.find_all(id=True)}
    used = set()
    for heading in soup.find_all(sorted(HEADING_TAGS), id=True):
        anchor_id = heading['id']
        if anchor_id in used:
            new_id = unique_slug(anchor_id, taken)
            taken.add(new_id)
            logger.debug(f"Renamed duplicate heading id '{anchor_id}' to '{new_id}'")
            heading['id'] = new_id
            permalink = heading.find('a', class_=PERMALINK_CLASS, href=f"#{anchor_id}")
            if permalink is not None:
                permalink['href'] = f"#{new_id}"
            anchor_id = new_id
        used.add(anchor_id)


def highlight_source(code: str, lang: str) -> Optional[str]:
    """Pygments markup for `code`, or None if the language is unknown or highlighting fails."""
    try:
        lexer = get_lexer_by_name(lang, stripnl=False)
    except ClassNotFound:
        return None
    try:
        return highlight(code, lexer, HtmlFormatter(nowrap=True))
    except Exception as e:
        logger.warning(f"Highlighting failed for language '{lang}': {e}")
        return None


def _language_of(code_tag) -> Optional[str]:
    for cls in code_tag.get('class') or []:
        if cls.startswith('language-') and len(cls) > len('language-'):
            return cls[len('language-'):]
    return None


def highlight_code_blocks(soup: BeautifulSoup) -> None:
    for code in soup.select('pre > code'):
        pre = code.parent
        lang = _language_of(code)
        source = code.get_text()

        new_pre = soup.new_tag('pre', attrs={'class': CODE_BLOCK_CLASS})
        new_code = soup.new_tag('code')
        highlighted = highlight_source(source, lang) if lang else None
        if highlighted is not None:
            new_code['class'] = [CODE_CLASS, f"language-{lang}"]
            fragment = BeautifulSoup(highlighted, 'html.parser')
            for child in list(fragment.contents):
                new_code.append(child)
        else:
            new_code['class'] = [CODE_CLASS]
            new_code.string = source
        new_pre.append(new_code)
        pre.replace_with(new_pre)


def wrap_tables(soup: BeautifulSoup) -> None:
    for table in soup.find_all('table'):
        parent = table.parent
        if parent is not None and parent.name == 'div' and TABLE_WRAPPER_CLASS in (parent.get('class') or []):
            continue
        table.wrap(soup.new_tag('div', attrs={'class': TABLE_WRAPPER_CLASS}))


def harden_external_links(soup: BeautifulSoup) -> None:
    for a_tag in soup.find_all('a', href=True):
        try:
            scheme = urlsplit(a_tag['href'].strip()).scheme.lower()
        except ValueError:
            continue
        if scheme in EXTERNAL_SCHEMES:
            a_tag['target'] = '_blank'
            a_tag['rel'] = 'noopener noreferrer'


def render_math(soup: BeautifulSoup) -> None:
    """Typeset arithmatex placeholders as MathML."""
    from latex2mathml.converter import convert

    for el in soup.select('.arithmatex'):
        display = 'block' if el.name == 'div' else 'inline'
        tex = el.get_text()
        match = _MATH_DELIMITERS.match(tex)
        source = (match.group(1) if match else tex).strip()
        try:
            mathml = convert(source, display=display)
        except Exception as e:
            logger.warning(f"Could not typeset math '{source[:40]}': {e}")
            continue
        el.clear()
        for child in list(BeautifulSoup(mathml, 'html.parser').contents):
            el.append(child)


def resolve_asset_paths(soup: BeautifulSoup, directory: str, resolver: AssetResolver) -> None:
    for img in soup.find_all('img', src=True):
        src = img['src']
        if not is_relative_reference(src):
            continue
        try:
            resolved = resolver.resolve(directory, src)
        except Exception as e:
            logger.debug(f"Asset resolver failed for {src}: {e}")
            continue
        if resolved:
            img['src'] = resolved
        else:
            logger.debug(f"Leaving unresolved asset reference: {src}")


def build_pipeline(capabilities: FrozenSet[str], source_location: Optional[str],
                   resolver: Optional[AssetResolver]) -> Pipeline:
    pipeline = Pipeline("HtmlPostProcess")
    pipeline.add_step(dedupe_heading_ids)
    pipeline.add_step(highlight_code_blocks)
    pipeline.add_step(wrap_tables)
    pipeline.add_step(harden_external_links)
    if MATH_EXTENSION in capabilities:
        pipeline.add_step(render_math)
    if source_location and resolver is not None:
        directory = os.path.dirname(os.path.abspath(source_location))
        pipeline.add_step(partial(resolve_asset_paths, directory=directory, resolver=resolver))
    return pipeline


# -------------------------------------------------------------------------
# Entry points
# -------------------------------------------------------------------------
def render_fallback(raw_text: str) -> str:
    return f'<pre class="{FALLBACK_CLASS}">{html_module.escape(raw_text)}</pre>'


def _transform(raw_text: str, source_location: Optional[str], capabilities: FrozenSet[str],
               resolver: Optional[AssetResolver]) -> str:
    body = render_markdown(preprocess(raw_text), capabilities)
    soup = BeautifulSoup(body, 'html.parser')
    build_pipeline(capabilities, source_location, resolver).run(soup)
    return str(soup)


def render_html(raw_text: str, source_location: Optional[str] = None,
                capabilities: Iterable[str] = frozenset(), resolver: Optional[AssetResolver] = None) -> str:
    """
    Markdown -> sanitized HTML. Never raises for bad input: on any
    rendering failure the raw text is shown escaped and preformatted.
    """
    capabilities = frozenset(capabilities)
    extra_protocols = (resolver.scheme,) if resolver is not None and resolver.scheme else ()
    try:
        return sanitize(_transform(raw_text, source_location, capabilities, resolver), extra_protocols)
    except Exception as e:
        logger.error(f"Render failed, falling back to escaped text: {e}", exc_info=True)
        return sanitize(render_fallback(raw_text), extra_protocols)


def render(raw_text: str, source_location: Optional[str] = None,
           capabilities: Iterable[str] = frozenset(), resolver: Optional[AssetResolver] = None) -> RenderResult:
    html = render_html(raw_text, source_location, capabilities, resolver)
    return RenderResult(html=html, headings=tuple(extract_headings(html)))


class Renderer:
    """
    Memoizing front end to `render`.
    Results are keyed by raw text, source location, capability snapshot and
    resolver, so any change to an input is a cache miss.
    """

    def __init__(self, resolver: Optional[AssetResolver] = None, cache_size: int = 16):
        self.resolver = resolver
        self._cached = lru_cache(maxsize=cache_size)(render)

    def render(self, document: Document, capabilities: Iterable[str] = frozenset()) -> RenderResult:
        return self._cached(document.raw_text, document.source_location, frozenset(capabilities), self.resolver)

    def set_resolver(self, resolver: Optional[AssetResolver]) -> None:
        self.resolver = resolver

    def cache_info(self):
        return self._cached.cache_info()

    def clear_cache(self) -> None:
        self._cached.cache_clear()
