"""Unit tests for depsonar.versions — version comparison and range matching."""

import pytest

from depsonar.versions import compare_versions, is_in_range, parse_version, strip_specifier

# ── parse_version ────────────────────────────────────────────────────────────


class TestParseVersion:
    def test_plain(self):
        assert parse_version("5.1.0") == [5, 1, 0]

    def test_leading_prefix_stripped(self):
        assert parse_version("v2.49.1") == [2, 49, 1]
        assert parse_version("^5.1") == [5, 1]

    def test_component_leading_digits(self):
        assert parse_version("1.0.3-rc1") == [1, 0, 3]

    def test_garbage_component_is_zero(self):
        assert parse_version("1.x.2") == [1, 0, 2]

    def test_empty(self):
        assert parse_version("") == [0]


# ── compare_versions ─────────────────────────────────────────────────────────


class TestCompareVersions:
    @pytest.mark.parametrize(
        "a,b,expected",
        [
            ("5.1", "5.1.0", 0),
            ("5.6.1", "5.6.2", -1),
            ("2.49.10", "2.49.9", 1),
            ("10.0.0", "9.99.99", 1),
            ("v1.2.3", "1.2.3", 0),
        ],
    )
    def test_ordering(self, a, b, expected):
        assert compare_versions(a, b) == expected

    def test_antisymmetric(self):
        assert compare_versions("1.2", "1.10") == -compare_versions("1.10", "1.2")

    def test_prerelease_not_ordered(self):
        assert compare_versions("1.0.0-beta", "1.0.0") == 0


# ── is_in_range ──────────────────────────────────────────────────────────────


class TestIsInRange:
    def test_lower_bound_inclusive(self):
        assert is_in_range("5.1.0", ">=5.1.0 <5.6.2") is True

    def test_upper_bound_exclusive(self):
        assert is_in_range("5.6.2", ">=5.1.0 <5.6.2") is False

    def test_below_range(self):
        assert is_in_range("5.0.9", ">=5.1.0 <5.6.2") is False

    def test_strict_greater(self):
        assert is_in_range("1.0.0", ">1.0.0") is False
        assert is_in_range("1.0.1", ">1.0.0") is True

    def test_upper_inclusive(self):
        assert is_in_range("4.19.2", "<=4.19.2") is True

    def test_equality(self):
        assert is_in_range("3.0.0", "=3.0") is True
        assert is_in_range("3.0.1", "==3.0.0") is False

    def test_unparseable_range_matches_everything(self):
        assert is_in_range("1.0.0", "not-a-constraint") is True

    def test_unparseable_tokens_skipped(self):
        assert is_in_range("1.0.0", "|| <2.0.0") is True
        assert is_in_range("3.0.0", "|| <2.0.0") is False

    def test_unknown_operator_skipped(self):
        assert is_in_range("1.0.0", "=>2.0.0") is True
        assert is_in_range("1.0.0", "!=1.0.0") is True

    def test_unknown_operator_does_not_hide_other_bounds(self):
        assert is_in_range("3.0.0", "=>1.0.0 <2.0.0") is False
        assert is_in_range("1.5.0", "!=1.5.0 >=1.0.0 <2.0.0") is True

    def test_empty_range(self):
        assert is_in_range("1.0.0", "") is True


# ── strip_specifier ──────────────────────────────────────────────────────────


class TestStripSpecifier:
    def test_caret(self):
        assert strip_specifier("^5.1.0") == "5.1.0"

    def test_comparison(self):
        assert strip_specifier(">=2.0") == "2.0"

    def test_bare(self):
        assert strip_specifier("1.2.3") == "1.2.3"
