"""Text extraction collaborators.

Binary formats (PDF/DOCX) are handled by an external service; the
filesystem extractor here only reads plain-text formats.
"""

from pathlib import Path
from typing import Protocol

from backend.app.docs.errors import ExtractionError

PLAIN_TEXT_SUFFIXES = (".txt", ".md")


class TextExtractor(Protocol):
    """Turns a stored document into plain text."""

    async def extract_text(self, storage_path: str) -> str:
        """Return the document's plain text.

        Raises:
            ExtractionError: If the file is missing, unsupported or unreadable
        """
        ...


class FileSystemTextExtractor:
    """Reads UTF-8 text files under a root directory."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).resolve()

    async def extract_text(self, storage_path: str) -> str:
        path = (self._root / storage_path).resolve()
        if not path.is_relative_to(self._root):
            raise ExtractionError(f"storage path escapes document root: {storage_path}")

        if path.suffix.lower() not in PLAIN_TEXT_SUFFIXES:
            raise ExtractionError(f"unsupported file type: {path.suffix or 'none'}")

        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise ExtractionError(f"stored file not found: {storage_path}") from e
        except (OSError, UnicodeDecodeError) as e:
            raise ExtractionError(f"could not read {storage_path}: {e}") from e
