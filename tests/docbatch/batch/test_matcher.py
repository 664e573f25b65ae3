"""Tests for index-based result matching."""

import pytest

from docbatch.batch.matcher import build_index_map, decode_token, encode_token, match_results
from docbatch.batch.models import JobItem, ResultRecord

PREFIX = "request-2025-01-01T00-00-00-000000Z"


def _items(count):
    return [JobItem(i, f"/pkg/src/file{i}.ts", stable_id=f"src/file{i}.ts") for i in range(count)]


class TestTokens:
    """Correlation token encoding and decoding."""

    def test_encode_decode(self):
        assert decode_token(encode_token(PREFIX, 12)) == 12

    @pytest.mark.parametrize("token,expected", [
        ("7", 7),
        (7, 7),
        ("request-abc-0", 0),
        ("request-abc", None),
        ("request-12-x", None),
        ("", None),
        (None, None),
        (True, None),
        (-1, None),
        ("\u00b2", None),
        ("request-x-\u0663", None),
        ("request-x-\uff11", None),
    ])
    def test_decode(self, token, expected):
        assert decode_token(token) == expected


class TestMatchResults:
    """Matching results back onto registry items."""

    def test_partial_reordered_results(self):
        """Indices 0,1,2 with results only for 2 and 0: two matched, one skipped."""
        records = [
            ResultRecord(encode_token(PREFIX, 2), "content for 2"),
            ResultRecord(encode_token(PREFIX, 0), "content for 0"),
        ]

        report = match_results(_items(3), records)

        assert [(item.stable_index, content) for item, content in report.matched] == [
            (0, "content for 0"),
            (2, "content for 2"),
        ]
        assert [item.stable_index for item in report.skipped] == [1]
        assert report.dropped_tokens == []

    def test_identical_sources_matched_by_index_only(self):
        """Content never participates in matching."""
        items = [JobItem(i, f"/pkg/{name}/index.ts", stable_id=f"{name}/index.ts") for i, name in enumerate("abc")]
        records = [ResultRecord(encode_token(PREFIX, i), f"doc {i}") for i in (2, 1, 0)]

        report = match_results(items, records)

        assert [(item.stable_id, content) for item, content in report.matched] == [
            ("a/index.ts", "doc 0"),
            ("b/index.ts", "doc 1"),
            ("c/index.ts", "doc 2"),
        ]

    def test_undecodable_and_unknown_tokens_dropped(self):
        records = [
            ResultRecord("garbage", "x"),
            ResultRecord(encode_token(PREFIX, 9), "y"),
            ResultRecord(encode_token(PREFIX, 0), "z"),
        ]

        report = match_results(_items(2), records)

        assert report.matched_count == 1
        assert report.skipped_count == 1
        assert set(report.dropped_tokens) == {"garbage", encode_token(PREFIX, 9)}

    def test_conflicting_results_drop_index(self):
        records = [
            ResultRecord(encode_token(PREFIX, 0), "first"),
            ResultRecord(encode_token("request-other", 0), "second"),
            ResultRecord(encode_token(PREFIX, 1), "fine"),
        ]

        report = match_results(_items(2), records)

        assert [item.stable_index for item, _ in report.matched] == [1]
        assert [item.stable_index for item in report.skipped] == [0]

    def test_conflict_stays_dropped_on_third_claim(self):
        records = [
            ResultRecord("a-0", "first"),
            ResultRecord("b-0", "second"),
            ResultRecord("c-0", "first"),
        ]

        mapping, dropped = build_index_map(records, [0])

        assert mapping == {}
        assert set(dropped) == {"a-0", "b-0", "c-0"}

    def test_identical_duplicates_collapse(self):
        records = [ResultRecord("a-0", "same"), ResultRecord("b-0", "same")]

        mapping, dropped = build_index_map(records)

        assert mapping == {0: "same"}
        assert dropped == []

    def test_non_ascii_digits_dropped_without_aborting(self):
        """Tokens with non-ASCII digits are dropped, the rest still match."""
        records = [
            ResultRecord("²", "bad"),
            ResultRecord("request-x-٣", "also bad"),
            ResultRecord(encode_token(PREFIX, 1), "good"),
        ]

        report = match_results(_items(4), records)

        assert [(item.stable_index, content) for item, content in report.matched] == [(1, "good")]
        assert set(report.dropped_tokens) == {"²", "request-x-٣"}
