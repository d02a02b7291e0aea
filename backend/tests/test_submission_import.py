"""
Tests for services/submission_import.py (CSV → SubmissionInput).

Test categories:
  1. PARSING: columns, platforms, view counts, skipped rows
  2. ERRORS: missing columns, unparseable input
  3. FETCH: httpx download (patched)
"""

import sys
import os

import httpx
import pytest
from unittest.mock import MagicMock, patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from services.submission_import import (
    ReportInputError,
    _safe_views,
    fetch_submissions_csv,
    parse_submissions_csv,
)


CSV_TEXT = """clip_url,platform,description,view_count,submitter_id,id
https://www.tiktok.com/@alice/video/111,tiktok,Use CODE123,"12,345",alice,sub_1
https://x.com/bob/status/222,X,no code,800,bob,sub_2
https://youtu.be/dQw4w9WgXcQ,,CODE123 inside,2000,carol,
,tiktok,orphan row,100,dave,sub_4
https://vimeo.com/1,,unknown host,100,erin,sub_5
"""


# ===========================================================================
# 1. PARSING
# ===========================================================================

class TestParseSubmissionsCsv:

    def test_rows_loaded(self):
        submissions = parse_submissions_csv(CSV_TEXT)
        assert [s.id for s in submissions] == ["sub_1", "sub_2", None]

    def test_fields_mapped(self):
        first = parse_submissions_csv(CSV_TEXT)[0]
        assert first.clip_url == "https://www.tiktok.com/@alice/video/111"
        assert first.platform == "tiktok"
        assert first.description == "Use CODE123"
        assert first.view_count == 12_345
        assert first.submitter_id == "alice"

    def test_x_alias_and_inferred_platform(self):
        submissions = parse_submissions_csv(CSV_TEXT)
        assert submissions[1].platform == "twitter"
        assert submissions[2].platform == "youtube"

    def test_header_case_and_whitespace_ignored(self):
        csv_text = " Clip_URL , PLATFORM \nhttps://www.instagram.com/p/abc/,instagram\n"
        submissions = parse_submissions_csv(csv_text)
        assert len(submissions) == 1
        assert submissions[0].view_count == 0
        assert submissions[0].description is None
        assert submissions[0].submitter_id is None

    def test_header_only(self):
        assert parse_submissions_csv("clip_url,platform\n") == []


class TestSafeViews:

    @pytest.mark.parametrize("raw,expected", [
        ("1,000", 1_000),
        ("42", 42),
        ("3.9", 3),
        ("", 0),
        (None, 0),
        ("many", 0),
        ("-5", 0),
        ("inf", 0),
        ("nan", 0),
    ])
    def test_safe_views(self, raw, expected):
        assert _safe_views(raw) == expected


# ===========================================================================
# 2. ERRORS
# ===========================================================================

class TestParseErrors:

    def test_missing_required_column(self):
        with pytest.raises(ReportInputError, match="platform"):
            parse_submissions_csv("clip_url,views\nhttps://x.com/a/status/1,5\n")

    def test_empty_input(self):
        with pytest.raises(ReportInputError):
            parse_submissions_csv("")


# ===========================================================================
# 3. FETCH
# ===========================================================================

class TestFetchSubmissionsCsv:

    @patch("services.submission_import.httpx.get")
    def test_fetch_and_parse(self, mock_get):
        response = MagicMock()
        response.text = CSV_TEXT
        response.raise_for_status.return_value = None
        mock_get.return_value = response

        submissions = fetch_submissions_csv("https://example.com/export.csv")

        assert len(submissions) == 3
        assert mock_get.call_args.args == ("https://example.com/export.csv",)
        assert mock_get.call_args.kwargs["follow_redirects"] is True

    @patch("services.submission_import.httpx.get")
    def test_transport_error_wrapped(self, mock_get):
        mock_get.side_effect = httpx.ConnectError("refused")
        with pytest.raises(ReportInputError, match="Could not fetch"):
            fetch_submissions_csv("https://example.com/export.csv")

    @patch("services.submission_import.httpx.get")
    def test_http_status_error_wrapped(self, mock_get):
        request = httpx.Request("GET", "https://example.com/export.csv")
        response = httpx.Response(404, request=request)
        mock_get.return_value = response
        with pytest.raises(ReportInputError):
            fetch_submissions_csv("https://example.com/export.csv")
