"""
Conversion pipeline: one bundle in, one self-contained email document out.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .utils.archive import ArchiveEntry
from .utils.document_selector import select_document
from .utils.error_handling import EmptyDocument, NoFilesUploaded
from .utils.html_rewriter import HtmlRewriter
from .utils.image_collector import ImageAsset, build_image_asset, collect_images
from .utils.logging_config import get_logger
from .utils.uploader import ContentAddressedUploader

logger = get_logger()


@dataclass(frozen=True)
class ConversionResult:
    html: str
    image_count: int

    def to_dict(self) -> Dict[str, object]:
        return {"html": self.html, "imageCount": self.image_count}


def _read_document(entry: ArchiveEntry) -> str:
    html = entry.content.decode("utf-8", errors="replace")
    if not html.strip():
        raise EmptyDocument(f"{entry.path} file is empty", filename=entry.path)
    return html


def build_image_url_map(assets: Sequence[ImageAsset], urls_by_hash: Dict[str, str]) -> Dict[str, str]:
    """Map each asset's normalized path to the URL uploaded for its content."""
    return {asset.normalized_path: urls_by_hash[asset.content_hash] for asset in assets}


async def convert(
    entries: Sequence[ArchiveEntry],
    uploader: ContentAddressedUploader,
    rewriter: Optional[HtmlRewriter] = None
) -> ConversionResult:
    """
    Convert a bundle into an email document with CDN image URLs.

    Uploads run concurrently and must all succeed before the document is
    rewritten; any failure aborts the conversion without a partial result.

    Raises:
        ConversionError: The typed failure of whichever stage failed
    """
    if not entries:
        raise NoFilesUploaded("No files uploaded")

    document = select_document(entries)
    html = _read_document(document)

    images = collect_images(entries)
    assets: List[ImageAsset] = [build_image_asset(entry) for entry in images]

    logger.info(f"Converting {document.path} with {len(assets)} images")
    urls_by_hash = await uploader.upload_many(assets)
    image_url_map = build_image_url_map(assets, urls_by_hash)

    rewriter = rewriter or HtmlRewriter()
    output = rewriter.rewrite(html, image_url_map)

    return ConversionResult(html=output, image_count=len(images))
