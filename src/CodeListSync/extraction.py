# === NAVMAP v1 ===
# {
#   "module": "CodeListSync.extraction",
#   "purpose": "Resolve effective/publishing dates, versions and latest flags from catalog prose.",
#   "sections": [
#     {
#       "id": "parse-block",
#       "name": "parse_block",
#       "anchor": "function-parse-block",
#       "kind": "function"
#     },
#     {
#       "id": "qualifies",
#       "name": "qualifies",
#       "anchor": "function-qualifies",
#       "kind": "function"
#     },
#     {
#       "id": "following-lists",
#       "name": "following_lists",
#       "anchor": "function-following-lists",
#       "kind": "function"
#     },
#     {
#       "id": "paragraph-stage",
#       "name": "paragraph_stage",
#       "anchor": "function-paragraph-stage",
#       "kind": "function"
#     },
#     {
#       "id": "list-item-stage",
#       "name": "list_item_stage",
#       "anchor": "function-list-item-stage",
#       "kind": "function"
#     },
#     {
#       "id": "extract-metadata",
#       "name": "extract_metadata",
#       "anchor": "function-extract-metadata",
#       "kind": "function"
#     },
#     {
#       "id": "extract-publishing-dates",
#       "name": "extract_publishing_dates",
#       "anchor": "function-extract-publishing-dates",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Resolve artifact metadata from the catalog page's free text.

**Purpose**
-----------
The catalog expresses release information as prose such as
``"15/11/25 | Published: 23/10/25 | EAS code list - version 15.0 (latest
version)"``. This module turns those blocks into
:class:`~CodeListSync.models.ArtifactMetadata` tuples and attaches them to the
artifact links found in or around each block.

**Stages**
----------
:func:`extract_metadata` runs two stages over one explicit
:data:`~CodeListSync.models.MetadataMap`:

1. :func:`paragraph_stage` scans ``<p>`` blocks, borrowing context from the
   neighbouring paragraphs and walking a bounded number of following
   siblings (:data:`LIST_LOOKAHEAD`) to reach the list that enumerates the
   releases of a category.
2. :func:`list_item_stage` scans every ``<li>`` in the document, innermost
   items first, so a nested sub-list's own metadata takes precedence while
   its parent item fills the gaps.

Every assignment goes through :func:`~CodeListSync.models.merge`; a field
resolved by an earlier block is never replaced by a later one.

**Failure model**
-----------------
Parsing never raises. Malformed dates resolve to ``None`` and the artifact is
left for :mod:`CodeListSync.fallback`.
"""

from __future__ import annotations

import logging
import re
from collections import deque
from datetime import date
from typing import Iterable, Iterator, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from CodeListSync.dates import SHORT_DATE_RE, normalize_text, normalize_version, parse_short_date
from CodeListSync.links import is_downloadable
from CodeListSync.models import ArtifactMetadata, MetadataMap, merge

__all__ = (
    "CATEGORY_KEYWORDS",
    "LIST_LOOKAHEAD",
    "assign",
    "element_text",
    "parse_block",
    "qualifies",
    "names_category",
    "following_lists",
    "paragraph_stage",
    "list_item_stage",
    "extract_metadata",
    "extract_publishing_dates",
)

LOGGER = logging.getLogger(__name__)

CATEGORY_KEYWORDS = (
    "EAS code list",
    "VATEX code list",
    "VAT Exemption Reason Code list",
    "EN16931 code list",
    "EN16931 code lists",
    "code lists as used in EN16931",
    "Validation artefacts",
    "Validation artifacts",
    "Genericode files",
)

LIST_LOOKAHEAD = 5
"""Maximum number of following siblings inspected for a release list."""

PUBLISHED_MARKER = "Published:"
LATEST_MARKER = "(latest version)"

_LIST_TAGS = frozenset({"ul", "ol"})
_BLOCK_TAGS = frozenset(
    {"p", "div", "li", "ul", "ol", "br", "tr", "td", "th", "table", "h1", "h2", "h3", "h4", "h5", "h6"}
)

_EFFECTIVE_DATE_RE = re.compile(r"(\d{1,2}\s*/?\s*\d{2}/\d{2})")
_EXACT_SHORT_DATE_RE = re.compile(r"\d{2}/\d{2}/\d{2}")
# "version 14" or "v14"; the lookbehind keeps words ending in "v" out.
_VERSION_TOKEN = r"(?<![a-z])(?:version|v)\s*"
_MULTI_PART_VERSION_RE = re.compile(_VERSION_TOKEN + r"(\d+(?:\.\d+)+)", re.IGNORECASE)
_SIMPLE_VERSION_RE = re.compile(_VERSION_TOKEN + r"(\d+)", re.IGNORECASE)
_DATED_THREE_PART_RE = re.compile(
    r"(\d{2}/\d{2}/\d{2}).*?" + _VERSION_TOKEN + r"(\d+(?:\.\d+){2,})", re.IGNORECASE | re.DOTALL
)
_DATED_TWO_PART_RE = re.compile(
    r"(\d{2}/\d{2}/\d{2}).*?" + _VERSION_TOKEN + r"(\d+(?:\.\d+)?)", re.IGNORECASE | re.DOTALL
)
_DATED_SIMPLE_RE = re.compile(r"(\d{2}/\d{2}/\d{2}).*?" + _VERSION_TOKEN + r"(\d+)", re.IGNORECASE | re.DOTALL)
_DATE_THEN_VERSION_RE = re.compile(r"\d{2}/\d{2}/\d{2}.*?(?:version|(?<![a-z])v\s*\d)", re.IGNORECASE)


# ============================================================================
# Text helpers
# ============================================================================


def element_text(element: Tag) -> str:
    """Concatenated text of ``element`` with block boundaries turned into spaces.

    Inline markup is joined without separators so that ``01<span>/02/21</span>``
    reads as ``01/02/21``.
    """
    parts: list[str] = []
    for node in element.descendants:
        if isinstance(node, Comment):
            continue
        if isinstance(node, NavigableString):
            parts.append(str(node))
        elif isinstance(node, Tag) and node.name in _BLOCK_TAGS:
            parts.append(" ")
    return normalize_text("".join(parts))


def names_category(text: str) -> bool:
    return any(keyword in text for keyword in CATEGORY_KEYWORDS)


def qualifies(text: str) -> bool:
    """Whether a block is worth parsing for release metadata."""
    return names_category(text) or PUBLISHED_MARKER in text or bool(_DATE_THEN_VERSION_RE.search(text))


def _version_from(text: str) -> Optional[str]:
    match = _MULTI_PART_VERSION_RE.search(text)
    if match:
        return normalize_version(match.group(1))
    match = _SIMPLE_VERSION_RE.search(text)
    if match:
        return match.group(1)
    return None


def parse_block(text: str) -> Optional[ArtifactMetadata]:
    """Parse one text block into metadata.

    Args:
        text: Raw block text; it is normalized before any pattern is applied.

    Returns:
        :class:`ArtifactMetadata` when a publishing date, or a date followed by
        a version, could be resolved; ``None`` otherwise.

    Examples:
        >>> meta = parse_block("15/11/25 | Published: 23/10/25 | EAS code list - version 15.0 (latest version)")
        >>> meta.effective_date, meta.publishing_date, meta.version, meta.is_latest_release
        (datetime.date(2025, 11, 15), datetime.date(2025, 10, 23), '15', True)
    """
    text = normalize_text(text)
    if not text:
        return None
    lowered = text.lower()
    is_latest = LATEST_MARKER in text

    marker = "published: "
    index = lowered.find(marker)
    if index < 0:
        marker = "published:"
        index = lowered.find(marker)

    if index >= 0:
        start = index + len(marker)
        while start < len(text) and text[start].isspace():
            start += 1
        candidate = text[start : start + 8]
        publishing_date = parse_short_date(candidate) if _EXACT_SHORT_DATE_RE.fullmatch(candidate) else None

        effective_date: Optional[date] = None
        if index > 0:
            match = _EFFECTIVE_DATE_RE.search(text[:index])
            if match:
                effective_date = parse_short_date(normalize_text(match.group(1)))

        if publishing_date is not None:
            return ArtifactMetadata(
                effective_date=effective_date,
                publishing_date=publishing_date,
                version=_version_from(text),
                is_latest_release=is_latest,
            )

    if "published" in lowered:
        return None

    match = _DATED_THREE_PART_RE.search(text)
    if match:
        return ArtifactMetadata(
            effective_date=parse_short_date(match.group(1)),
            version=match.group(2),
            is_latest_release=is_latest,
        )
    match = _DATED_TWO_PART_RE.search(text)
    if match:
        return ArtifactMetadata(
            effective_date=parse_short_date(match.group(1)),
            version=normalize_version(match.group(2)),
            is_latest_release=is_latest,
        )
    match = _DATED_SIMPLE_RE.search(text)
    if match:
        return ArtifactMetadata(
            effective_date=parse_short_date(match.group(1)),
            version=match.group(2),
            is_latest_release=is_latest,
        )
    return None


# ============================================================================
# Tree helpers
# ============================================================================


def _sibling(element: Tag, *, forward: bool) -> Optional[Tag]:
    node = element.next_sibling if forward else element.previous_sibling
    while node is not None and not isinstance(node, Tag):
        node = node.next_sibling if forward else node.previous_sibling
    return node


def _paragraph_sibling(element: Tag, *, forward: bool) -> Optional[Tag]:
    node = _sibling(element, forward=forward)
    if node is not None and node.name == "p":
        return node
    return None


def _artifact_links(element: Tag, base_url: str) -> Iterator[str]:
    for anchor in element.find_all("a", href=True):
        url = urljoin(base_url, anchor["href"].strip())
        if is_downloadable(url):
            yield url


def _depth(element: Tag) -> int:
    return sum(1 for _ in element.parents)


def _innermost_first(items: Iterable[Tag]) -> list[Tag]:
    return sorted(items, key=_depth, reverse=True)


def assign(mapping: MetadataMap, urls: Iterable[str], metadata: ArtifactMetadata) -> int:
    """Merge ``metadata`` into ``mapping`` for every URL; returns the number of URLs touched."""
    count = 0
    for url in urls:
        mapping[url] = merge(mapping.get(url), metadata)
        count += 1
    return count


def following_lists(anchor: Tag, lookahead: int = LIST_LOOKAHEAD) -> list[Tag]:
    """Lists reachable from ``anchor``'s following siblings.

    Walks at most ``lookahead`` following siblings. A sibling that is itself a
    ``<ul>``/``<ol>`` is returned and ends the walk; any other sibling is
    searched breadth-first for its outermost nested lists.
    """
    found: list[Tag] = []
    sibling = _sibling(anchor, forward=True)
    steps = 0
    while sibling is not None and steps < lookahead:
        steps += 1
        if sibling.name in _LIST_TAGS:
            found.append(sibling)
            break
        queue: deque[Tag] = deque([sibling])
        while queue:
            node = queue.popleft()
            for child in node.children:
                if not isinstance(child, Tag):
                    continue
                if child.name in _LIST_TAGS:
                    found.append(child)
                else:
                    queue.append(child)
        sibling = _sibling(sibling, forward=True)
    return found


# ============================================================================
# Stages
# ============================================================================


def _scan_list_items(items: Iterable[Tag], base_url: str, mapping: MetadataMap) -> int:
    assigned = 0
    for item in _innermost_first(items):
        metadata = parse_block(element_text(item))
        if metadata is not None:
            assigned += assign(mapping, _artifact_links(item, base_url), metadata)
    return assigned


def paragraph_stage(soup: BeautifulSoup, base_url: str, mapping: MetadataMap) -> int:
    """Attach metadata found in ``<p>`` blocks and the lists that follow them."""
    assigned = 0
    for para in soup.find_all("p"):
        text = element_text(para)
        if not (names_category(text) or PUBLISHED_MARKER in text):
            continue

        combined = text
        previous = _paragraph_sibling(para, forward=False)
        if previous is not None:
            previous_text = element_text(previous)
            if SHORT_DATE_RE.search(previous_text) or PUBLISHED_MARKER in previous_text or names_category(previous_text):
                combined = f"{previous_text} {combined}"

        following = _paragraph_sibling(para, forward=True)
        following_text = element_text(following) if following is not None else ""
        mentions_genericode = "Genericode" in following_text or "genericodes" in following_text.lower()
        if following is not None and (
            mentions_genericode or SHORT_DATE_RE.search(following_text) or "version" in following_text
        ):
            combined = f"{combined} {following_text}"

        metadata = parse_block(combined)
        if metadata is not None:
            own_links = list(_artifact_links(para, base_url))
            assigned += assign(mapping, own_links, metadata)
            if following is not None and (mentions_genericode or following.find("a", href=True)):
                assigned += assign(mapping, _artifact_links(following, base_url), metadata)
            if PUBLISHED_MARKER in text and not para.find("a", href=True) and previous is not None:
                assigned += assign(mapping, _artifact_links(previous, base_url), metadata)

        if names_category(text):
            for lst in following_lists(para):
                assigned += _scan_list_items(lst.find_all("li"), base_url, mapping)
    return assigned


def list_item_stage(soup: BeautifulSoup, base_url: str, mapping: MetadataMap) -> int:
    """Attach metadata found in qualifying ``<li>`` blocks.

    Links inside a nested sub-list inherit the parent item's metadata for any
    field the sub-item did not resolve itself.
    """
    items = [item for item in soup.find_all("li") if qualifies(element_text(item))]
    return _scan_list_items(items, base_url, mapping)


def extract_metadata(soup: BeautifulSoup, base_url: str) -> MetadataMap:
    """Build the URL to metadata mapping for one parsed catalog page."""
    mapping: MetadataMap = {}
    from_paragraphs = paragraph_stage(soup, base_url, mapping)
    from_items = list_item_stage(soup, base_url, mapping)
    LOGGER.debug("Metadata assignments: %d from paragraphs, %d from list items", from_paragraphs, from_items)
    LOGGER.info("Extracted metadata for %d URLs from catalog text", len(mapping))
    return mapping


def extract_publishing_dates(soup: BeautifulSoup) -> dict[date, date]:
    """Map effective dates to publishing dates from every "Published:" block.

    When a block lacks its own effective date, the first ``dd/mm/yy`` of the
    preceding paragraph (for ``<p>``) or of the item itself (for ``<li>``) is
    used, provided it differs from the publishing date.
    """
    result: dict[date, date] = {}
    for element in soup.find_all(["p", "li"]):
        text = element_text(element)
        if PUBLISHED_MARKER not in text:
            continue
        metadata = parse_block(text)
        if metadata is None or metadata.publishing_date is None:
            continue
        if metadata.effective_date is not None:
            result[metadata.effective_date] = metadata.publishing_date
            continue
        if element.name == "p":
            previous = _paragraph_sibling(element, forward=False)
            source = element_text(previous) if previous is not None else ""
        else:
            source = text
        match = SHORT_DATE_RE.search(source)
        effective = parse_short_date(match.group(1)) if match else None
        if effective is not None and effective != metadata.publishing_date:
            result[effective] = metadata.publishing_date
    LOGGER.info("Extracted %d effective date -> publishing date mappings", len(result))
    return result
