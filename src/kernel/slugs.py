"""
Slug helpers shared by project URLs and exported file names.
"""

import re

_NON_ALNUM = re.compile(r"[^a-z0-9]+")

MAX_SLUG_LENGTH = 100


def slugify(value: str, fallback: str = "item") -> str:
    """Lowercase, collapse non-alphanumerics to '-', trim dashes, cap length."""
    slug = _NON_ALNUM.sub("-", (value or "").lower()).strip("-")[:MAX_SLUG_LENGTH].strip("-")
    return slug or fallback
