"""
Archive ingestion for the conversion pipeline.

This module turns what a client submits (multipart files, possibly a ZIP of
the whole export) into a flat list of ``ArchiveEntry`` values and enforces
the per-file and per-request size limits before the pipeline sees any data.
"""

import io
import zipfile
import zlib
from dataclasses import dataclass
from typing import List, Optional

from starlette.datastructures import FormData, UploadFile

from ..config import UploadLimits
from .error_handling import FileTooLarge, InvalidArchive
from .logging_config import get_logger

logger = get_logger()


@dataclass(frozen=True)
class ArchiveEntry:
    """One logical file of the submitted bundle."""

    path: str
    content: bytes = b""
    is_directory: bool = False
    field_name: Optional[str] = None

    def __repr__(self):
        return (
            f"ArchiveEntry(path={self.path!r}, size={len(self.content)}, "
            f"is_directory={self.is_directory}, field_name={self.field_name!r})"
        )


class _SizeTracker:
    """Running total of accepted bytes for one request."""

    def __init__(self, limits: UploadLimits):
        self.limits = limits
        self.total = 0

    def add(self, name: str, size: int) -> None:
        if size > self.limits.max_file_bytes:
            raise FileTooLarge(
                f"File too large: {name}. Maximum size is "
                f"{self.limits.max_file_bytes // (1024 * 1024)}MB per file.",
                filename=name
            )
        self.total += size
        if self.total > self.limits.max_total_bytes:
            raise FileTooLarge(
                f"Upload too large. Maximum total size is "
                f"{self.limits.max_total_bytes // (1024 * 1024)}MB.",
                filename=name
            )


def is_zip_upload(name: str) -> bool:
    return name.lower().endswith('.zip')


def expand_zip(
    data: bytes,
    limits: Optional[UploadLimits] = None,
    source_name: str = "archive.zip",
    tracker: Optional[_SizeTracker] = None
) -> List[ArchiveEntry]:
    """
    Expand a ZIP archive into archive entries.

    Members that cannot be read are logged and skipped; the rest of the
    archive is still returned.

    Args:
        data: Raw ZIP bytes
        limits: Size limits applied to the uncompressed members
        source_name: Name of the uploaded archive, for messages
        tracker: Shared size tracker when the archive is part of a larger request

    Returns:
        Entries in archive order, directories included

    Raises:
        InvalidArchive: If the payload is not a readable ZIP archive
        FileTooLarge: If a member or the running total exceeds the limits
    """
    tracker = tracker or _SizeTracker(limits or UploadLimits())
    entries: List[ArchiveEntry] = []

    try:
        archive = zipfile.ZipFile(io.BytesIO(data), 'r')
    except (zipfile.BadZipFile, zipfile.LargeZipFile) as e:
        raise InvalidArchive(f"Couldn't open {source_name}: {e}", filename=source_name)

    with archive:
        for info in archive.infolist():
            if info.is_dir():
                entries.append(ArchiveEntry(path=info.filename, is_directory=True))
                continue

            # Declared size is checked before decompressing anything
            tracker.add(info.filename, info.file_size)

            try:
                content = archive.read(info)
            except (zipfile.BadZipFile, zlib.error, NotImplementedError, RuntimeError, ValueError, OSError) as e:
                logger.warning(f"Skipped {info.filename} in {source_name}: {e}")
                continue

            entries.append(ArchiveEntry(path=info.filename, content=content))

    logger.info(f"Expanded {source_name}: {len(entries)} entries")
    return entries


async def entries_from_form(form: FormData, limits: Optional[UploadLimits] = None) -> List[ArchiveEntry]:
    """
    Collect archive entries from every file in a multipart form.

    Field names are arbitrary; the field is kept on each entry so a file
    submitted under the ``images`` field is recognized as an image even
    when its filename carries no directory.
    """
    tracker = _SizeTracker(limits or UploadLimits())
    entries: List[ArchiveEntry] = []

    for field_name, value in form.multi_items():
        if not isinstance(value, UploadFile):
            continue

        name = value.filename or field_name
        content = await value.read()
        if is_zip_upload(name):
            # The archive itself is bounded by the request total; its members
            # are tracked individually as they are expanded
            if len(content) > tracker.limits.max_total_bytes:
                raise FileTooLarge(f"Archive too large: {name}", filename=name)
            entries.extend(expand_zip(content, source_name=name, tracker=tracker))
        else:
            tracker.add(name, len(content))
            entries.append(ArchiveEntry(path=name, content=content, field_name=field_name))

    logger.debug(f"Received {len(entries)} entries from multipart form")
    return entries
