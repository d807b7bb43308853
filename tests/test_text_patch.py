"""Tests for applying offset-based edits to manifest text."""

import pytest

from text_patch import Edit, apply_edits


class TestApplyEdits:

    def test_no_edits_returns_text_unchanged(self):
        text = "FROM alpine:3.9\r\n\tRUN echo ok  \n"
        assert apply_edits(text, []) == text

    def test_single_replacement(self):
        assert apply_edits("image: postgres:14.1", [Edit(16, 4, "14.2")]) == "image: postgres:14.2"

    def test_edits_use_offsets_of_the_input_text(self):
        text = "a=1\nb=2\nc=3\n"
        edits = [Edit(10, 1, "333"), Edit(2, 1, "10"), Edit(6, 1, "")]
        assert apply_edits(text, edits) == "a=10\nb=\nc=333\n"

    def test_insertion(self):
        assert apply_edits("1.2", [Edit(3, 0, ".0")]) == "1.2.0"

    def test_overlapping_edits_rejected(self):
        with pytest.raises(ValueError):
            apply_edits("abcdef", [Edit(0, 3, "x"), Edit(2, 2, "y")])

    def test_edit_past_end_rejected(self):
        with pytest.raises(ValueError):
            apply_edits("abc", [Edit(2, 5, "x")])


class TestEdit:

    def test_delta(self):
        assert Edit(0, 3, "1.10").delta == 1
        assert Edit(0, 6, "3.15").delta == -2
        assert Edit(5, 0, "").delta == 0
