"""
Path normalization for matching image references.

Every comparison between an uploaded file's path and a reference found in
the HTML goes through ``normalize_image_path`` so both sides produce the
same key.
"""

import re

from ..config import IMAGES_PREFIX

# At most one leading "./" or "../"
_LEADING_RELATIVE = re.compile(r'^\.\.?/')


def normalize_image_path(path: str) -> str:
    """
    Canonicalize a file path or URL reference into a comparable key.

    Backslashes become forward slashes, the string is lowercased, one
    leading ``./`` or ``../`` is stripped, and anything before an inner
    ``images/`` segment is dropped.

    Examples:
        >>> normalize_image_path("./Images/Foo.PNG")
        'images/foo.png'
        >>> normalize_image_path("assets\\\\images\\\\a.png")
        'images/a.png'
    """
    normalized = path.replace('\\', '/').lower()
    normalized = _LEADING_RELATIVE.sub('', normalized, count=1)

    index = normalized.find(IMAGES_PREFIX)
    if index > 0:
        normalized = normalized[index:]
    return normalized


def basename(path: str) -> str:
    """Return the final slash-delimited segment of a path."""
    return path.replace('\\', '/').rsplit('/', 1)[-1]


def logical_image_path(path: str) -> str:
    """
    Build the canonical ``images/<name>`` key for an uploaded image.

    Only the file name is kept, so ``export/Images/sub/A.png`` and
    ``A.png`` both map to ``images/a.png``.
    """
    return normalize_image_path(IMAGES_PREFIX + basename(path))


def is_images_path(normalized: str) -> bool:
    return normalized.startswith(IMAGES_PREFIX)


def extension(path: str) -> str:
    """Return the lowercase extension of a path without the dot."""
    name = basename(path)
    if '.' not in name:
        return ''
    return name.rsplit('.', 1)[-1].lower()
