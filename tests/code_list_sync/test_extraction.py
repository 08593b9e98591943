"""
Tests for catalog prose extraction.

Covers single-block parsing, the paragraph stage with its neighbouring
context and bounded list lookahead, the list-item stage with nested
sub-lists, and the effective-date to publishing-date map.
"""

from __future__ import annotations

from datetime import date

import pytest
from bs4 import BeautifulSoup

from CodeListSync.extraction import (
    LIST_LOOKAHEAD,
    element_text,
    extract_metadata,
    extract_publishing_dates,
    following_lists,
    parse_block,
    qualifies,
)

BASE = "https://host/sites/pages/467108974/Registry"
ATTACH = "https://host/download/attachments/467108974/"


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


class TestParseBlock:
    """Test parsing of one free-text block."""

    def test_full_block(self):
        meta = parse_block("15/11/25 | Published: 23/10/25 | EAS code list - version 15.0 (latest version)")
        assert meta.effective_date == date(2025, 11, 15)
        assert meta.publishing_date == date(2025, 10, 23)
        assert meta.version == "15"
        assert meta.is_latest_release

    def test_three_part_version_kept(self):
        meta = parse_block("15/05/24 | Published: 02/05/24 | Validation artefacts version 1.3.15")
        assert meta.version == "1.3.15"
        assert not meta.is_latest_release

    def test_publishing_without_effective(self):
        meta = parse_block("Published: 23/10/25 version 3")
        assert meta.effective_date is None
        assert meta.publishing_date == date(2025, 10, 23)
        assert meta.version == "3"

    def test_dated_version_without_published_marker(self):
        meta = parse_block("15/03/19 - EN16931 code lists version 2.0")
        assert meta.effective_date == date(2019, 3, 15)
        assert meta.publishing_date is None
        assert meta.version == "2"

    def test_two_digit_year_pivot(self):
        meta = parse_block("14/11/68 | Published: 01/11/68 | version 1")
        assert meta.effective_date == date(1968, 11, 14)
        assert meta.publishing_date == date(1968, 11, 1)

    def test_split_date_is_repaired(self):
        meta = parse_block("01 /02/21 | Published: 15/01/21 | version 4")
        assert meta.effective_date == date(2021, 2, 1)

    def test_short_version_token_with_published_marker(self):
        meta = parse_block("15/11/25 | Published: 23/10/25 | EAS code list v14")
        assert meta.publishing_date == date(2025, 10, 23)
        assert meta.version == "14"

    @pytest.mark.parametrize(
        ("text", "effective", "version"),
        [
            ("15/11/25 | EAS code list v14.0", date(2025, 11, 15), "14"),
            ("15/11/25 | EAS code list V14", date(2025, 11, 15), "14"),
            ("15/05/24 - Validation artefacts v1.3.15", date(2024, 5, 15), "1.3.15"),
        ],
    )
    def test_short_version_token_without_published_marker(self, text, effective, version):
        meta = parse_block(text)
        assert meta.effective_date == effective
        assert meta.version == version

    def test_words_ending_in_v_are_not_versions(self):
        assert parse_block("15/11/25 | Published: 23/10/25 | see dev 3").version is None

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "The EAS code list enumerates the electronic address schemes.",
            "Published: soon",
            "Published: 31/02/21 | version 1",
        ],
    )
    def test_unparseable_blocks(self, text):
        """Blocks without a usable date resolve to None and never raise."""
        assert parse_block(text) is None

    def test_qualifies(self):
        assert qualifies("EAS code list")
        assert qualifies("Published: 01/01/25")
        assert qualifies("01/01/25 something version 3")
        assert qualifies("01/01/25 something v3")
        assert not qualifies("Contact the service desk")


class TestElementText:
    """Test text extraction across inline and block markup."""

    def test_inline_markup_joined(self):
        soup = _soup("<li>01<span>/02/21</span> | <b>Published:</b> 15/01/21</li>")
        assert element_text(soup.li) == "01/02/21 | Published: 15/01/21"

    def test_block_markup_separated(self):
        soup = _soup("<div><p>version 2</p><p>EAS</p></div>")
        assert element_text(soup.div) == "version 2 EAS"


class TestFollowingLists:
    """Test the bounded sibling walk from a category paragraph."""

    def test_direct_list(self):
        soup = _soup("<p>EAS code list</p><div>intro</div><ul><li>a</li></ul>")
        assert [lst.name for lst in following_lists(soup.p)] == ["ul"]

    def test_nested_list_found_breadth_first(self):
        soup = _soup("<p>EAS code list</p><div><section><ol><li>a</li></ol></section></div>")
        found = following_lists(soup.p)
        assert [lst.name for lst in found] == ["ol"]

    def test_lookahead_bound(self):
        filler = "<div>filler</div>" * LIST_LOOKAHEAD
        soup = _soup(f"<p>EAS code list</p>{filler}<ul><li>a</li></ul>")
        assert following_lists(soup.p) == []
        assert len(following_lists(soup.p, lookahead=LIST_LOOKAHEAD + 1)) == 1


class TestExtractMetadata:
    """Test the two extraction stages end to end."""

    def test_paragraph_followed_by_dated_paragraph(self):
        html = f"""
        <p>EAS code list</p>
        <p>15/11/25 | Published: 23/10/25 | version 15 (latest version)
           <a href="{ATTACH}eas.xlsx">EAS</a></p>
        """
        mapping = extract_metadata(_soup(html), BASE)
        meta = mapping[f"{ATTACH}eas.xlsx"]
        assert meta.effective_date == date(2025, 11, 15)
        assert meta.publishing_date == date(2025, 10, 23)
        assert meta.version == "15"
        assert meta.is_latest_release

    def test_category_paragraph_reaches_release_list(self):
        html = f"""
        <p>VATEX code list</p>
        <div>Releases of the code list:</div>
        <ul>
          <li>15/11/25 | Published: 23/10/25 | version 5 <a href="/download/attachments/467108974/vatex.xlsx">v5</a></li>
        </ul>
        """
        mapping = extract_metadata(_soup(html), BASE)
        assert mapping["https://host/download/attachments/467108974/vatex.xlsx"].version == "5"

    def test_nested_list_inherits_parent_fields(self):
        html = f"""
        <ul>
          <li>01/06/24 | Published: 15/05/24 | EN16931 code lists - version 13
            <ul>
              <li><a href="{ATTACH}EN16931%20code%20lists%20values%20v13.xlsx">XLSX</a></li>
              <li>Published: 20/05/24 <a href="{ATTACH}EN16931%20code%20lists%20-%20genericodes.zip">ZIP</a></li>
            </ul>
          </li>
        </ul>
        """
        mapping = extract_metadata(_soup(html), BASE)

        spreadsheet = mapping[f"{ATTACH}EN16931%20code%20lists%20values%20v13.xlsx"]
        assert spreadsheet.effective_date == date(2024, 6, 1)
        assert spreadsheet.publishing_date == date(2024, 5, 15)
        assert spreadsheet.version == "13"

        archive = mapping[f"{ATTACH}EN16931%20code%20lists%20-%20genericodes.zip"]
        assert archive.publishing_date == date(2024, 5, 20)
        assert archive.effective_date == date(2024, 6, 1)
        assert archive.version == "13"

    def test_navigation_links_ignored(self):
        html = '<li>15/11/25 | Published: 23/10/25 <a href="/pages/viewpage.action?pageId=1">page</a></li>'
        assert extract_metadata(_soup(html), BASE) == {}

    def test_first_assignment_wins(self):
        html = f"""
        <ul>
          <li>15/11/25 | Published: 23/10/25 | EAS code list - version 15 <a href="{ATTACH}eas.xlsx">a</a></li>
          <li>15/05/25 | Published: 10/04/25 | EAS code list - version 14 <a href="{ATTACH}eas.xlsx">b</a></li>
        </ul>
        """
        meta = extract_metadata(_soup(html), BASE)[f"{ATTACH}eas.xlsx"]
        assert meta.version == "15"
        assert meta.effective_date == date(2025, 11, 15)


class TestPublishingDates:
    """Test the effective-date keyed publishing map."""

    def test_from_blocks(self):
        html = """
        <ul>
          <li>15/11/25 | Published: 23/10/25 | version 15</li>
          <li>15/05/25 | Published: 10/04/25 | version 14</li>
        </ul>
        """
        result = extract_publishing_dates(_soup(html))
        assert result == {date(2025, 11, 15): date(2025, 10, 23), date(2025, 5, 15): date(2025, 4, 10)}

    def test_effective_date_from_previous_paragraph(self):
        html = "<p>Applicable from 15/11/25</p><p>Published: 23/10/25</p>"
        assert extract_publishing_dates(_soup(html)) == {date(2025, 11, 15): date(2025, 10, 23)}
