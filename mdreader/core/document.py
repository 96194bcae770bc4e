import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .exceptions import DocumentReadError, DocumentTooLargeError

logger = logging.getLogger(__name__)

DEFAULT_MAX_FILE_SIZE = 20 * 1024 * 1024  # 20 MB


@dataclass(frozen=True)
class Document:
    """
    A markdown document as supplied by the host.
    Immutable: opening another file produces a new Document.
    """
    raw_text: str
    source_location: Optional[str] = None

    @property
    def name(self) -> str:
        if not self.source_location:
            return "Untitled"
        return Path(self.source_location).name

    @property
    def directory(self) -> Optional[str]:
        """Directory containing the source, used to resolve relative assets."""
        if not self.source_location:
            return None
        return os.path.dirname(os.path.abspath(self.source_location))


def read_document(path: Path, max_file_size: int = DEFAULT_MAX_FILE_SIZE) -> Document:
    """
    Read a single local UTF-8 document.

    Raises DocumentTooLargeError when the file is over the limit and
    DocumentReadError for anything else that prevents reading it.
    """
    path = Path(path)
    try:
        size = path.stat().st_size
    except OSError as e:
        raise DocumentReadError(path, e.strerror or str(e)) from e

    if not path.is_file():
        raise DocumentReadError(path, "not a regular file")

    if size > max_file_size:
        logger.warning(f"File too large: {path} ({size / (1024 * 1024):.2f} MB)")
        raise DocumentTooLargeError(path, size, max_file_size)

    try:
        with open(path, 'r', encoding='utf-8') as f:
            text = f.read()
    except UnicodeDecodeError as e:
        raise DocumentReadError(path, "the file must be encoded in UTF-8") from e
    except OSError as e:
        raise DocumentReadError(path, e.strerror or str(e)) from e

    logger.info(f"Read document: {path}, size: {len(text)} chars")
    return Document(raw_text=text, source_location=str(path.resolve()))
