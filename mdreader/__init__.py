"""
mdreader: a local markdown document reader.

Renders a single markdown file to sanitized HTML with heading anchors,
highlighted code, optional math, a tracked table of contents and
in-document find.
"""

from mdreader.version_info import __version__
from mdreader.core.document import Document, read_document
from mdreader.core.renderer import Renderer, RenderResult, render, render_html
from mdreader.core.session import ReaderSession

__all__ = [
    '__version__',
    'Document',
    'read_document',
    'Renderer',
    'RenderResult',
    'render',
    'render_html',
    'ReaderSession',
]
