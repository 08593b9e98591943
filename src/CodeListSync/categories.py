"""Category detection from filename and URL shape."""

from __future__ import annotations

import re
from typing import Optional

from CodeListSync.links import decode_filename

__all__ = (
    "EAS",
    "VATEX",
    "GENERICODE",
    "EN16931_XLSX",
    "EN16931",
    "VALIDATION_UBL",
    "VALIDATION_CII",
    "GUIDANCE",
    "detect_category",
)

EAS = "EAS code list"
VATEX = "VATEX code list"
GENERICODE = "EN 16931 code list - GeneriCode"
EN16931_XLSX = "EN 16931 code list - XLSX"
EN16931 = "EN 16931 code list"
VALIDATION_UBL = "validation-artefacts-UBL"
VALIDATION_CII = "validation-artefacts-CII"
GUIDANCE = "guidance"

_EAS_TOKEN_RE = re.compile(r"(?<![a-z])eas(?![a-z])")
_VATEX_TOKEN_RE = re.compile(r"(?<![a-z])vatex(?![a-z])")
_URL_CATEGORY_RE = re.compile(
    r"/attachments/\d+/([^/]+?)(?:%20|\+|\s)+(?:code(?:%20|\+|\s)list|version)",
    re.IGNORECASE,
)


def _is_en16931(name: str) -> bool:
    return "en16931" in name or "en 16931" in name


def detect_category(filename: Optional[str], url: Optional[str] = None) -> str:
    """Return the category label for an artifact, or ``""`` when unknown.

    Filename rules are checked first, in a fixed order; the attachment URL is
    only consulted when none of them apply.
    """
    name = decode_filename(filename).lower()

    if name.endswith(".xlsx"):
        if ("address" in name and "scheme" in name) or _EAS_TOKEN_RE.search(name):
            return EAS
        if ("exemption" in name and ("vatex" in name or "vat exemption" in name)) or _VATEX_TOKEN_RE.search(
            name
        ):
            return VATEX

    if "genericodes" in name and name.endswith(".zip"):
        return GENERICODE
    if _is_en16931(name) and "code lists" in name and name.endswith(".xlsx"):
        return EN16931_XLSX
    if (
        name.endswith(".zip")
        and _is_en16931(name)
        and not name.startswith(("en16931-ubl-", "en16931-cii-"))
    ):
        return GENERICODE
    if name.endswith(".zip"):
        if name.startswith("en16931-ubl-"):
            return VALIDATION_UBL
        if name.startswith("en16931-cii-"):
            return VALIDATION_CII
    if "technical guidance" in name and name.endswith(".pdf"):
        return GUIDANCE

    return _category_from_url(url or "")


def _category_from_url(url: str) -> str:
    match = _URL_CATEGORY_RE.search(url)
    if not match:
        return ""
    category = decode_filename(match.group(1)).strip()
    lowered = category.lower()
    if "address" in lowered and "scheme" in lowered:
        return EAS
    if "exemption" in lowered and ("vatex" in lowered or "vat exemption" in lowered):
        return VATEX
    if _is_en16931(lowered):
        return EN16931
    return category
