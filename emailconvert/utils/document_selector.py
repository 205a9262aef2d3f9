"""
Selection of the HTML document that becomes the email body.
"""

from typing import Callable, Iterable, List, Optional

from ..config import DOCUMENT_EXTENSION, DOCUMENT_PREFERENCES
from .archive import ArchiveEntry
from .error_handling import NoDocumentFound
from .logging_config import get_logger
from .paths import basename

logger = get_logger()


def _matches_name(preferred: str) -> Callable[[ArchiveEntry], bool]:
    """Exact basename match, or the name appearing anywhere in the path."""
    def predicate(entry: ArchiveEntry) -> bool:
        path = entry.path.lower()
        return basename(path) == preferred or preferred in path
    return predicate


def _is_html(entry: ArchiveEntry) -> bool:
    return basename(entry.path).lower().endswith(DOCUMENT_EXTENSION)


def _first(entries: List[ArchiveEntry], predicate: Callable[[ArchiveEntry], bool]) -> Optional[ArchiveEntry]:
    for entry in entries:
        if predicate(entry):
            return entry
    return None


def select_document(entries: Iterable[ArchiveEntry]) -> ArchiveEntry:
    """
    Choose the HTML document to treat as the email body.

    Canva does not guarantee its export naming, so candidates are tried in
    order: ``index.html``, then ``email.html`` (each matched on the exact
    file name or as a substring of the full path), then the first file
    ending in ``.html``.

    Raises:
        NoDocumentFound: If no entry satisfies any rule
    """
    files = [entry for entry in entries if not entry.is_directory]

    rules = [_matches_name(name) for name in DOCUMENT_PREFERENCES] + [_is_html]
    for rule in rules:
        document = _first(files, rule)
        if document is not None:
            logger.debug(f"Selected document {document.path}")
            return document

    raise NoDocumentFound(
        "No HTML file found. Please ensure your folder/ZIP contains an HTML file "
        "(index.html, email.html, etc.)"
    )
