"""Identifier slug utilities.

Knowledge entity IDs embed free text (file paths, feature names, platform
IDs). These helpers reduce such text to a stable, URL-safe token so the same
input always produces the same identifier.
"""

from __future__ import annotations

import hashlib
import re

_NON_SLUG_CHARS = re.compile(r"[^a-z0-9]+")
_MAX_SLUG_LENGTH = 80
_DIGEST_LENGTH = 10


def slugify(text: str) -> str:
    """Reduce ``text`` to lowercase alphanumerics separated by single dashes.

    Long inputs are truncated and suffixed with a short digest of the full
    text so distinct long values keep distinct slugs. Text with no
    alphanumeric characters collapses to its digest.

    Parameters
    ----------
    text:
        Arbitrary input such as ``src/api/Handlers.py`` or ``Dark Mode``.

    Returns
    -------
    str
        Slug such as ``src-api-handlers-py`` or ``dark-mode``.

    Examples
    --------
    >>> slugify("src/api/Handlers.py")
    'src-api-handlers-py'
    >>> slugify("  Dark   Mode ")
    'dark-mode'

    """
    slug = _NON_SLUG_CHARS.sub("-", text.lower()).strip("-")
    if slug and len(slug) <= _MAX_SLUG_LENGTH:
        return slug
    digest = hashlib.sha1(text.encode("utf-8"), usedforsecurity=False).hexdigest()
    digest = digest[:_DIGEST_LENGTH]
    if not slug:
        return digest
    return f"{slug[:_MAX_SLUG_LENGTH].rstrip('-')}-{digest}"
