"""
Asset resolution strategies.

The host decides how a relative image reference inside a document becomes
something its presentation layer can load. A resolver exposes the URI scheme
it produces (so the sanitizer lets it through) and a ``resolve`` callback.
"""

import logging
import os
import posixpath
import re
from pathlib import Path
from typing import Optional
from urllib.parse import quote, unquote, urlsplit

logger = logging.getLogger(__name__)

_WINDOWS_DRIVE = re.compile(r'^[a-zA-Z]:[\\/]')


def is_relative_reference(reference: str) -> bool:
    """
    True for references that point at a file next to the document:
    no scheme, not absolute, not a fragment, not protocol-relative.
    """
    ref = reference.strip()
    if not ref or ref.startswith(('#', '/', '\\')):
        return False
    if _WINDOWS_DRIVE.match(ref):
        return False
    parts = urlsplit(ref)
    return not parts.scheme and not parts.netloc


class AssetResolver:
    """Base strategy: leaves every reference unresolved."""

    #: URI scheme of resolved references, None for scheme-less URLs
    scheme: Optional[str] = None

    def resolve(self, directory: str, reference: str) -> Optional[str]:
        return None


class FileUriResolver(AssetResolver):
    """Resolve to ``file://`` URIs, for hosts that load local files directly."""

    scheme = "file"

    def resolve(self, directory: str, reference: str) -> Optional[str]:
        path = unquote(urlsplit(reference).path)
        if not path:
            return None
        target = Path(directory, path).resolve()
        return target.as_uri()


class RouteAssetResolver(AssetResolver):
    """
    Resolve to host-relative URLs served from the document's directory,
    e.g. ``img/logo.png`` -> ``/assets/img/logo.png``.
    References that climb out of the directory are refused.
    """

    def __init__(self, prefix: str = "/assets"):
        self.prefix = prefix.rstrip('/')

    def resolve(self, directory: str, reference: str) -> Optional[str]:
        path = unquote(urlsplit(reference).path).replace('\\', '/')
        normalized = posixpath.normpath(path)
        if normalized in ('.', '') or normalized == '..' or normalized.startswith('../'):
            logger.debug(f"Refusing asset outside document directory: {reference}")
            return None
        if not os.path.isfile(os.path.join(directory, *normalized.split('/'))):
            logger.debug(f"Asset not found: {reference} (in {directory})")
            return None
        return f"{self.prefix}/{quote(normalized)}"

    def __repr__(self):
        return f"RouteAssetResolver(prefix={self.prefix!r})"
