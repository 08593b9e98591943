"""Tests for filename-derived versions and effective dates."""

from __future__ import annotations

from datetime import date, datetime

import pytest

from CodeListSync.fallback import apply_fallbacks, derive_effective_date, derive_version
from CodeListSync.models import ArtifactRecord

ATTACH = "https://host/download/attachments/1/"


class TestDeriveVersion:
    """Test version extraction from decoded filenames."""

    @pytest.mark.parametrize(
        ("filename", "expected"),
        [
            ("en16931-ubl-1.3.15.zip", "1.3.15"),
            ("en16931-cii-1.3.14.2.zip", "1.3.14.2"),
            ("EN16931 code lists values version 16.0.xlsx", "16"),
            ("EN16931 code lists values v14 - used from 2024-11-15.xlsx", "14"),
            ("VATEX code list version 5.xlsx", "5"),
            ("eas-codes.xlsx", None),
            ("", None),
        ],
    )
    def test_derive(self, filename, expected):
        assert derive_version(filename) == expected


class TestDeriveEffectiveDate:
    """Test effective-date extraction from decoded filenames."""

    def test_iso_preferred(self):
        assert derive_effective_date("values - used from 2024-11-15 (01/01/24).xlsx") == date(2024, 11, 15)

    def test_short_date(self):
        assert derive_effective_date("values 15/03/19.xlsx") == date(2019, 3, 15)

    def test_none(self):
        assert derive_effective_date("eas-codes.xlsx") is None


class TestApplyFallbacks:
    """Test that fallbacks only fill gaps."""

    def test_fills_missing_fields(self):
        record = ArtifactRecord(url=f"{ATTACH}EN16931%20code%20lists%20values%20v14%20-%20used%20from%202024-11-15.xlsx")
        assert apply_fallbacks([record]) == 1
        assert record.version == "14"
        assert record.effective_date == date(2024, 11, 15)

    def test_html_values_win(self):
        record = ArtifactRecord(
            url=f"{ATTACH}EN16931%20code%20lists%20values%20v14%20-%20used%20from%202024-11-15.xlsx",
            version="15",
        )
        apply_fallbacks([record])
        assert record.version == "15"
        assert record.effective_date == date(2024, 11, 15)

    def test_transport_timestamps_never_promoted(self):
        """Last-Modified and modificationDate never become business dates."""
        record = ArtifactRecord(
            url=f"{ATTACH}eas-codes.xlsx?version=1&modificationDate=1700000000000",
            last_modified=datetime(2025, 10, 23, 8, 30),
        )
        assert apply_fallbacks([record]) == 0
        assert record.effective_date is None
        assert record.publishing_date is None
