"""Slugs, canonical chapter slugs and chapter-number parsing.

Canonical chapter slugs have the shape ``g-<group8>-chapter-<label>-<lang>``.
The encoding is lossy: two groups sharing the same 8-character id prefix
produce the same slug, and labels containing characters outside
``[a-z0-9._-]`` encode fine but no longer decode. Callers needing the full
group id must re-resolve against label + language.
"""

import math
import re
import time
import unicodedata
from typing import Optional, Union
from urllib.parse import quote

from catalog.models import DecodedSlug

UUID_RE = re.compile(r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$', re.IGNORECASE)
ONESHOT_RE = re.compile(r'^one[-\s]?shot$', re.IGNORECASE)
CANONICAL_SLUG_RE = re.compile(r'^g-([a-z0-9]+)-chapter-([a-z0-9._-]+)-([a-z]{2})$', re.IGNORECASE)

# Free-text chapter markers: "ch 7", "chapter 7", "c.7", "#7"
_CHAPTER_MARKER_RE = re.compile(r'(?:ch(?:apter)?\.?|c\.?|#)\s*([0-9.]+)', re.IGNORECASE)
_ANY_NUMBER_RE = re.compile(r'[0-9.]+')
_UUID_PREFIX_RE = re.compile(r'^[0-9a-f]{8}-[0-9a-f]{4}', re.IGNORECASE)
_LEADING_FLOAT_RE = re.compile(r'^(\d+(?:\.\d*)?|\.\d+)')

SLUG_ATTEMPTS = 50


def is_uuid(value: Optional[str]) -> bool:
    return bool(value) and bool(UUID_RE.match(value.strip()))


def slugify(text: Optional[str]) -> str:
    """Fold a title into a URL slug: 'Ōkami no Koe!' -> 'okami-no-koe'."""
    normalized = unicodedata.normalize('NFKD', text or '')
    folded = ''.join(ch for ch in normalized if not unicodedata.combining(ch)).lower()
    folded = re.sub(r"['’\"]", '', folded)
    base = re.sub(r'[^a-z0-9]+', '-', folded).strip('-')
    return base or 'untitled'


def slug_candidates(base: str, attempts: int = SLUG_ATTEMPTS):
    """Yield base, base-2, base-3, ... then a timestamp-suffixed slug that ends the search."""
    base = base or 'untitled'
    yield base
    for i in range(2, attempts + 1):
        yield f'{base}-{i}'
    yield f'{base}-{int(time.time() * 1000)}'


def short8(group_id: Optional[str]) -> str:
    return (group_id or '').replace('-', '')[:8] or 'unknown'


def normalize_label(label: Union[str, int, float, None]) -> str:
    if label is None:
        return 'oneshot'
    raw = str(label).strip()
    if not raw or ONESHOT_RE.match(raw):
        return 'oneshot'
    return raw


def encode_chapter_slug(group_id: Optional[str], label: Union[str, int, float, None], lang: Optional[str]) -> str:
    """Build ``g-<group8>-chapter-<label>-<lang>``.

    The label is kept verbatim (dots included); escaping it for a URL path is
    the caller's job, see :func:`chapter_path`.
    """
    return f'g-{short8(group_id)}-chapter-{normalize_label(label)}-{(lang or "en").lower()}'


def decode_chapter_slug(slug: Optional[str]) -> Optional[DecodedSlug]:
    """Parse a canonical chapter slug, or return None if it does not match the grammar."""
    if not slug:
        return None
    m = CANONICAL_SLUG_RE.match(slug.strip())
    if not m:
        return None
    return DecodedSlug(group_short=m.group(1).lower(), label=m.group(2), lang=m.group(3).lower())


def chapter_path(series_slug: str, group_id: Optional[str], label: Union[str, int, float, None], lang: Optional[str]) -> str:
    """Reader path for a chapter with every segment URL-escaped."""
    return '/series/{}/g-{}-chapter-{}-{}'.format(
        quote(series_slug, safe=''),
        quote(short8(group_id), safe=''),
        quote(normalize_label(label), safe=''),
        quote((lang or 'en').lower(), safe=''),
    )


def chapter_sort_number(label: Optional[str]) -> float:
    """Numeric ordering key of an upstream chapter label.

    Everything except digits and dots is dropped before parsing, so "10"
    sorts after "9" and "12.5a" counts as 12.5. Missing or unparsable labels
    (oneshots, extras) sort after every numbered chapter.
    """
    if label is None:
        return math.inf
    digits = re.sub(r'[^0-9.]', '', str(label))
    if not digits:
        return math.inf
    try:
        return float(digits)
    except ValueError:
        return math.inf


def _leading_float(token: str) -> Optional[float]:
    m = _LEADING_FLOAT_RE.match(token)
    return float(m.group(1)) if m else None


def parse_chapter_number(text: Optional[str]) -> Optional[float]:
    """Extract a chapter number from free text such as a chapter label or title.

    An explicit marker ("ch 7", "Chapter 7", "c.7", "#7") wins. Otherwise the
    last number in the string is taken, since volume numbers usually come
    first ("Vol 1. 7" -> 7). UUID-looking input yields None.
    """
    if not text:
        return None
    if _UUID_PREFIX_RE.match(text):
        return None

    marker = _CHAPTER_MARKER_RE.search(text)
    if marker:
        return _leading_float(marker.group(1))

    numbers = _ANY_NUMBER_RE.findall(text)
    if numbers:
        return _leading_float(numbers[-1])
    return None
