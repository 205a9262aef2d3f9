"""
HTML rewriting: points local image references at their uploaded URLs.

The document is parsed with BeautifulSoup to find the references, but the
output is the original source with only the rewritten attribute values
spliced in. Entities, conditional comments, Outlook's ``<![if ...]>``
sections, attribute order and whitespace all come through untouched.

Usage:
    from emailconvert.utils.html_rewriter import HtmlRewriter

    rewriter = HtmlRewriter()
    html = rewriter.rewrite(document, {"images/logo.png": "https://cdn/.../logo"})
"""

import html
import re
from typing import Dict, List, Optional, Tuple

from bs4 import BeautifulSoup
from bs4.dammit import EntitySubstitution
from bs4.formatter import HTMLFormatter

from .error_handling import ParseFailed
from .logging_config import get_logger
from .paths import is_images_path, normalize_image_path

logger = get_logger()

# Attribute syntax as html.parser accepts it inside a start tag
_ATTRIBUTE = re.compile(
    r"""([^\s/>][^\s/=>]*)(\s*=+\s*('[^']*'|"[^"]*"|(?!['"])[^>\s]*))?"""
)
_SEPARATOR = re.compile(r"(?:\s|/(?!>))*")


class SourceOrderFormatter(HTMLFormatter):
    """
    Serializes a parsed tree as close to its source as BeautifulSoup allows.

    Attributes keep their parsed order, void elements get no ``/`` and only
    ``&``, ``<`` and ``>`` are escaped.
    """

    def __init__(self):
        super().__init__(
            entity_substitution=EntitySubstitution.substitute_xml,
            void_element_close_prefix=None
        )

    def attributes(self, tag):
        if not tag.attrs:
            return []
        return list(tag.attrs.items())


def _line_starts(document: str) -> List[int]:
    # html.parser counts lines on "\n" only
    starts = [0]
    index = document.find("\n")
    while index != -1:
        starts.append(index + 1)
        index = document.find("\n", index + 1)
    return starts


def _attribute_value_span(document: str, start: int, tag_name: str, attribute: str) -> Optional[Tuple[int, int]]:
    """
    Locate the value of ``attribute`` in the start tag beginning at ``start``.

    The span covers the value token including its quotes. When the attribute
    is repeated the last one wins, as it does in the parsed tree.
    """
    opening = "<" + tag_name
    if document[start:start + len(opening)].lower() != opening:
        return None

    span = None
    pos = _SEPARATOR.match(document, start + len(opening)).end()
    while pos < len(document) and document[pos] != ">" and not document.startswith("/>", pos):
        match = _ATTRIBUTE.match(document, pos)
        if match is None:
            return None
        if match.group(1).lower() == attribute and match.group(3) is not None:
            span = match.span(3)
        pos = _SEPARATOR.match(document, match.end()).end()
    return span


def _quoted(original: str, url: str) -> str:
    quote = original[0] if original[:1] in ("'", '"') else '"'
    return f"{quote}{html.escape(url)}{quote}"


class HtmlRewriter:
    """
    Rewrites ``<img src>`` and image preload ``<link href>`` references.

    Parsing is lenient: malformed markup is repaired by the parser rather
    than rejected. Only the rewritten attribute values change in the output.
    """

    def __init__(self, parser: str = "html.parser"):
        """
        Args:
            parser: BeautifulSoup parser to use ('html.parser', 'lxml', 'html5lib')
        """
        self.parser = parser
        self.formatter = SourceOrderFormatter()
        self.rewrite_count = 0

    def _parse(self, document: str) -> BeautifulSoup:
        try:
            return BeautifulSoup(document, self.parser)
        except Exception as e:
            logger.error(f"Failed to parse HTML: {e}")
            raise ParseFailed(f"Failed to parse HTML: {e}")

    def _lookup(self, reference: Optional[str], image_url_map: Dict[str, str]) -> Optional[str]:
        if not reference:
            return None
        normalized = normalize_image_path(reference)
        if not is_images_path(normalized):
            return None
        return image_url_map.get(normalized)

    def _match(self, tag, attribute: str, image_url_map: Dict[str, str]):
        url = self._lookup(tag.get(attribute), image_url_map)
        if url:
            return (tag, attribute, url)
        if tag.get(attribute):
            logger.debug(f"No uploaded image for {tag.name} {attribute}={tag.get(attribute)!r}")
        return None

    @staticmethod
    def _is_image_preload(link) -> bool:
        rel = link.get("rel") or []
        if isinstance(rel, str):
            rel = rel.split()
        return (
            [value.lower() for value in rel] == ["preload"]
            and (link.get("as") or "").lower() == "image"
        )

    def _splices(self, document: str, edits) -> Optional[List[Tuple[int, int, str]]]:
        """Map each edit to a source span, or None if any tag lacks a source position."""
        line_starts = _line_starts(document)
        splices = []
        for tag, attribute, url in edits:
            if tag.sourceline is None or tag.sourcepos is None or tag.sourceline > len(line_starts):
                return None
            start = line_starts[tag.sourceline - 1] + tag.sourcepos
            span = _attribute_value_span(document, start, tag.name, attribute)
            if span is None:
                return None
            value_start, value_end = span
            splices.append((value_start, value_end, _quoted(document[value_start:value_end], url)))
        return sorted(splices)

    def rewrite(self, document: str, image_url_map: Dict[str, str]) -> str:
        """
        Replace mapped image references in a document.

        References whose normalized path is not in the map are left as they
        are.

        Args:
            document: HTML source of the email body
            image_url_map: Normalized ``images/...`` path to uploaded URL

        Returns:
            The rewritten HTML

        Raises:
            ParseFailed: If the document cannot be parsed at all
        """
        soup = self._parse(document)

        edits = [self._match(img, "src", image_url_map) for img in soup.find_all("img")]
        edits += [
            self._match(link, "href", image_url_map)
            for link in soup.find_all("link")
            if self._is_image_preload(link)
        ]
        edits = [edit for edit in edits if edit]
        self.rewrite_count = len(edits)
        logger.info(f"Rewrote {self.rewrite_count} image references")

        if not edits:
            return document

        splices = self._splices(document, edits)
        if splices is None:
            # Parsers other than html.parser may not record source positions
            logger.warning(f"No source positions from parser {self.parser!r}; serializing the parsed tree")
            for tag, attribute, url in edits:
                tag[attribute] = url
            return soup.decode(formatter=self.formatter)

        parts = []
        cursor = 0
        for value_start, value_end, replacement in splices:
            parts.append(document[cursor:value_start])
            parts.append(replacement)
            cursor = value_end
        parts.append(document[cursor:])
        return "".join(parts)
