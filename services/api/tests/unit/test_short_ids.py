"""Unit tests for short player codes."""

import pytest

from playerlink.directory.short_ids import (
    SHORT_ID_ALPHABET,
    SHORT_ID_LENGTH,
    generate_short_id,
    normalize_short_id,
)


class TestShortIds:
    def test_default_length_is_8(self):
        assert SHORT_ID_LENGTH == 8
        assert len(generate_short_id()) == 8

    def test_custom_length(self):
        assert len(generate_short_id(12)) == 12

    def test_only_unambiguous_characters(self):
        for _ in range(200):
            code = generate_short_id()
            assert all(c in SHORT_ID_ALPHABET for c in code)

    def test_alphabet_has_no_look_alikes(self):
        for c in "0OlI":
            assert c not in SHORT_ID_ALPHABET

    def test_codes_are_unique(self):
        codes = {generate_short_id() for _ in range(1000)}
        assert len(codes) == 1000

    @pytest.mark.parametrize("length", [0, -3])
    def test_non_positive_length_rejected(self, length):
        with pytest.raises(ValueError):
            generate_short_id(length)

    def test_normalize_trims(self):
        assert normalize_short_id("  aBc123  ") == "aBc123"

    def test_normalize_keeps_case(self):
        assert normalize_short_id("AbCd") == "AbCd"

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_normalize_blank_is_none(self, value):
        assert normalize_short_id(value) is None
