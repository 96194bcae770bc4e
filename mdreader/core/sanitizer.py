"""
Allow-list HTML sanitizer.

Everything the renderer produces passes through here before it reaches a
consumer. Tags, attributes and URI schemes are default-deny; script tags,
inline event handlers and script-bearing styles are removed no matter what
an allow-list says.
"""

import logging
import re
from functools import lru_cache
from typing import Callable, Dict, FrozenSet, Iterable, List

import bleach
from bleach.css_sanitizer import CSSSanitizer

logger = logging.getLogger(__name__)

ALLOWED_TAGS = frozenset([
    # structure
    'p', 'br', 'hr', 'div', 'span', 'section', 'article', 'figure', 'figcaption',
    'h1', 'h2', 'h3', 'h4', 'h5', 'h6', 'blockquote',
    # inline
    'a', 'img', 'strong', 'b', 'em', 'i', 'u', 's', 'del', 'ins', 'mark',
    'small', 'sub', 'sup', 'abbr', 'cite', 'q', 'code', 'pre', 'kbd', 'samp', 'var',
    # lists
    'ul', 'ol', 'li', 'dl', 'dt', 'dd',
    # tables
    'table', 'caption', 'colgroup', 'col', 'thead', 'tbody', 'tfoot', 'tr', 'th', 'td',
    # disclosure
    'details', 'summary',
    # task list checkboxes
    'input',
])

MATHML_TAGS = frozenset([
    'math', 'semantics', 'annotation', 'mrow', 'mi', 'mn', 'mo', 'ms', 'mtext',
    'mspace', 'msup', 'msub', 'msubsup', 'mfrac', 'msqrt', 'mroot', 'mstyle',
    'mpadded', 'mphantom', 'menclose', 'munder', 'mover', 'munderover',
    'mtable', 'mtr', 'mtd', 'mlabeledtr', 'merror', 'mfenced',
])

MATHML_ATTRIBUTES = frozenset([
    'display', 'mathvariant', 'mathsize', 'mathcolor', 'mathbackground',
    'stretchy', 'fence', 'separator', 'form', 'lspace', 'rspace', 'accent',
    'accentunder', 'movablelimits', 'largeop', 'symmetric', 'minsize', 'maxsize',
    'width', 'height', 'depth', 'linethickness', 'notation', 'displaystyle',
    'scriptlevel', 'columnalign', 'rowalign', 'columnspacing', 'rowspacing',
    'columnlines', 'rowlines', 'frame', 'encoding', 'open', 'close', 'separators',
])

GLOBAL_ATTRIBUTES = frozenset(['id', 'class', 'title', 'lang', 'dir', 'aria-hidden', 'aria-label'])

TAG_ATTRIBUTES: Dict[str, FrozenSet[str]] = {
    'a': frozenset(['href', 'target', 'rel', 'name']),
    'img': frozenset(['src', 'alt', 'width', 'height']),
    'abbr': frozenset(['title']),
    'ol': frozenset(['start', 'reversed', 'type']),
    'li': frozenset(['value']),
    'th': frozenset(['align', 'colspan', 'rowspan', 'scope']),
    'td': frozenset(['align', 'colspan', 'rowspan']),
    'col': frozenset(['span']),
    'colgroup': frozenset(['span']),
    'details': frozenset(['open']),
}

ALLOWED_PROTOCOLS = frozenset([
    'http', 'https', 'ftp', 'ftps',
    'mailto', 'tel', 'sms', 'callto', 'xmpp', 'irc', 'ircs', 'geo',
])

# Never allowed, even if a caller lists them
FORBIDDEN_TAGS = frozenset(['script', 'style', 'iframe', 'object', 'embed', 'frame', 'frameset', 'base', 'meta', 'link'])

# Style is only kept on MathML elements, for glyph sizing
MATH_CSS_PROPERTIES = [
    'font-size', 'font-style', 'font-weight', 'width', 'height', 'vertical-align',
    'margin-left', 'margin-right', 'padding-left', 'padding-right',
]
_STYLE_SCRIPT_VECTOR = re.compile(r'expression\s*\(|url\s*\(|javascript:|vbscript:|behavior\s*:|-moz-binding', re.IGNORECASE)


def is_event_handler(name: str) -> bool:
    return name.lower().startswith('on')


def safe_style(value: str) -> bool:
    return not _STYLE_SCRIPT_VECTOR.search(value)


def _allow_input(name: str, value: str) -> bool:
    if name == 'type':
        return value.lower() == 'checkbox'
    return name in ('checked', 'disabled')


def _attribute_filter(tag: str, name: str, value: str) -> bool:
    """bleach attribute callback: True keeps the attribute."""
    if is_event_handler(name):
        return False
    if name in GLOBAL_ATTRIBUTES:
        return True
    if tag == 'input':
        return _allow_input(name, value)
    if tag in MATHML_TAGS:
        if name == 'style':
            return safe_style(value)
        return name in MATHML_ATTRIBUTES
    return name in TAG_ATTRIBUTES.get(tag, ())


class Sanitizer:
    """
    Wraps a configured bleach Cleaner.
    `extra_protocols` adds the host's local-asset scheme (e.g. ``file``).
    """

    def __init__(self, extra_protocols: Iterable[str] = (), tags: Iterable[str] = ALLOWED_TAGS | MATHML_TAGS,
                 attribute_filter: Callable[[str, str, str], bool] = _attribute_filter):
        self.protocols: List[str] = sorted(ALLOWED_PROTOCOLS | {p.lower() for p in extra_protocols if p})
        self.tags = frozenset(tags) - FORBIDDEN_TAGS

        def guarded_filter(tag, name, value):
            if is_event_handler(name):
                return False
            return attribute_filter(tag, name, value)

        self._cleaner = bleach.Cleaner(
            tags=self.tags,
            attributes=guarded_filter,
            protocols=self.protocols,
            css_sanitizer=CSSSanitizer(allowed_css_properties=MATH_CSS_PROPERTIES),
            strip=True,
            strip_comments=True,
        )

    def clean(self, html: str) -> str:
        if not html:
            return ""
        cleaned = self._cleaner.clean(html)
        logger.debug(f"Sanitized {len(html)} -> {len(cleaned)} chars")
        return cleaned


@lru_cache(maxsize=8)
def get_sanitizer(extra_protocols: FrozenSet[str] = frozenset()) -> Sanitizer:
    return Sanitizer(extra_protocols)


def sanitize(html: str, extra_protocols: Iterable[str] = ()) -> str:
    """Sanitize rendered HTML with the default allow-list."""
    return get_sanitizer(frozenset(extra_protocols)).clean(html)
