# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Unit tests for quota sampling."""

import pytest

from remote_purge.metrics.quota import extract_quota_sample, sanitize_bytes


class TestSanitizeBytes:

    @pytest.mark.parametrize("raw,expected", [
        (1024, 1024),
        (1024.9, 1024),
        ("2048", 2048),
        (" 10 ", 10),
        (-5, 0),
        (None, None),
        (True, None),
        ("", None),
        ("lots", None),
        (float("nan"), None),
        (float("inf"), None),
    ])
    def test_values(self, raw, expected):
        assert sanitize_bytes(raw) == expected


class TestExtractQuotaSample:

    def test_usage_mapping(self):
        sample = extract_quota_sample({"usage": {"used": 250, "quota": 1000, "free": 750}}, 42.0)
        assert sample == {
            "used_bytes": 250,
            "quota_bytes": 1000,
            "free_bytes": 750,
            "ratio": 0.25,
            "captured_at": 42.0,
        }

    def test_flat_result_with_alternate_names(self):
        sample = extract_quota_sample({"used_bytes": "300", "limit": 1200}, 1.0)
        assert sample["used_bytes"] == 300
        assert sample["quota_bytes"] == 1200
        assert sample["free_bytes"] == 900
        assert sample["ratio"] == pytest.approx(0.25)

    def test_used_derived_from_quota_and_free(self):
        sample = extract_quota_sample({"usage": {"total": 100, "available": 40}}, 1.0)
        assert sample["used_bytes"] == 60
        assert sample["ratio"] == pytest.approx(0.6)

    def test_quota_derived_from_used_and_free(self):
        sample = extract_quota_sample({"usage": {"used": 30, "free_bytes": 70}}, 1.0)
        assert sample["quota_bytes"] == 100

    def test_ratio_clamped(self):
        sample = extract_quota_sample({"usage": {"used": 150, "quota": 100}}, 1.0)
        assert sample["ratio"] == 1.0
        assert sample["free_bytes"] == 0

    def test_zero_quota_has_no_ratio(self):
        assert extract_quota_sample({"usage": {"used": 5, "quota": 0}}, 1.0)["ratio"] is None

    def test_no_usage_fields(self):
        assert extract_quota_sample({"success": True, "message": "Deleted"}, 1.0) is None
        assert extract_quota_sample({"usage": {"used": "junk"}}, 1.0) is None
        assert extract_quota_sample(None, 1.0) is None
