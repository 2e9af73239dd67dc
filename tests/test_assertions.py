"""Tests for assertion helpers."""

import pytest

from docrunner.assertions import expect_raises


def _boom():
    raise ValueError("bad value here")


class TestExpectRaises:
    """Tests for expect_raises."""

    def test_returns_exception(self):
        """The raised exception is returned."""
        error = expect_raises(_boom, ValueError)
        assert isinstance(error, ValueError)

    def test_match_substring(self):
        """A matching message passes."""
        expect_raises(_boom, ValueError, match="value")

    def test_match_mismatch(self):
        """A non-matching message fails."""
        with pytest.raises(AssertionError, match="Expected message containing"):
            expect_raises(_boom, ValueError, match="other")

    def test_nothing_raised(self):
        """Not raising fails."""
        with pytest.raises(AssertionError, match="Expected ValueError"):
            expect_raises(lambda: None, ValueError)

    def test_wrong_type_propagates(self):
        """Exceptions of other types are not swallowed."""
        with pytest.raises(ValueError):
            expect_raises(_boom, KeyError)
