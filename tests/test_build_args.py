"""Tests for the positional ARG declaration table."""

import pytest

from build_args import BuildArgs, UnknownBuildArgError
from text_patch import apply_edits

SHADOWED = (
    "ARG VERSION=1.0\n"
    "FROM a:${VERSION}\n"
    "ARG VERSION 2.0\n"
    "FROM b:${VERSION}\n"
)


@pytest.fixture
def args():
    return BuildArgs(SHADOWED)


class TestParsing:

    def test_both_declaration_forms(self, args):
        values = [(arg.name, arg.value) for arg in args]
        assert values == [('VERSION', '1.0'), ('VERSION', '2.0')]
        assert len(args) == 2

    def test_value_offsets_point_at_values(self, args):
        for arg in args:
            assert SHADOWED[arg.value_offset:arg.value_offset + arg.value_length] == arg.value

    def test_trailing_blanks_and_crlf_excluded(self):
        args = BuildArgs("ARG PHP=8.1.2  \r\nFROM php:${PHP}\r\n")
        arg = args.get('PHP', 100)
        assert arg.value == '8.1.2'
        assert arg.value_length == 5

    def test_keyword_is_case_insensitive(self):
        assert BuildArgs("arg NODE=18\n").has('NODE')

    def test_declaration_without_value_is_ignored(self):
        args = BuildArgs("ARG ONLY_NAME\nFROM scratch\n")
        assert not args.has('ONLY_NAME')
        assert 'ONLY_NAME' not in args


class TestLookup:

    def test_get_returns_last_declaration_before_position(self, args):
        first_from = SHADOWED.index("FROM a")
        second_from = SHADOWED.index("FROM b")
        assert args.get('VERSION', first_from).value == '1.0'
        assert args.get('VERSION', second_from).value == '2.0'

    def test_get_at_declaration_offset_includes_it(self, args):
        assert args.get('VERSION', SHADOWED.index("ARG VERSION 2.0")).value == '2.0'

    def test_get_unknown_name(self, args):
        with pytest.raises(UnknownBuildArgError):
            args.get('MISSING', 1000)

    def test_get_before_any_declaration(self):
        args = BuildArgs("FROM busybox:${V}\nARG V=1\n")
        with pytest.raises(UnknownBuildArgError):
            args.get('V', 0)

    def test_set_changes_only_visible_declaration(self, args):
        args.set('VERSION', '1.5', SHADOWED.index("FROM a"))
        assert [arg.value for arg in args] == ['1.5', '2.0']


class TestHashes:

    def test_fingerprint_is_deterministic(self):
        assert BuildArgs.fingerprint('VERSION', 12) == BuildArgs.fingerprint('VERSION', 12)
        assert BuildArgs.fingerprint('VERSION', 12) != BuildArgs.fingerprint('VERSION', 46)
        assert BuildArgs.fingerprint('VERSION', 12) != BuildArgs.fingerprint('VERSIONS', 12)

    def test_hash_resolves_to_same_declaration_after_shift(self, args):
        position = SHADOWED.index("FROM b")
        key = args.hash_of('VERSION', position)
        declaration = args.get('VERSION', position)

        args.shift_offsets_from(0, 7)

        assert args.get_by_hash(key) is declaration
        args.set_by_hash(key, '2.1')
        assert declaration.value == '2.1'

    def test_unknown_hash(self, args):
        with pytest.raises(UnknownBuildArgError):
            args.get_by_hash('deadbeef')
        with pytest.raises(UnknownBuildArgError):
            args.set_by_hash('deadbeef', '1')


class TestOffsets:

    def test_shift_moves_only_later_values(self, args):
        first, second = list(args)
        before = (first.value_offset, second.value_offset)

        args.shift_offsets_from(SHADOWED.index("FROM a"), 3)

        assert first.value_offset == before[0]
        assert second.value_offset == before[1] + 3

    def test_zero_shift_is_noop(self, args):
        before = [arg.value_offset for arg in args]
        args.shift_offsets_from(0, 0)
        assert [arg.value_offset for arg in args] == before

    def test_pending_edits_cover_changed_values_only(self, args):
        assert args.pending_edits() == []

        args.set('VERSION', '2.10', 1000)

        edits = args.pending_edits()
        assert len(edits) == 1
        assert apply_edits(SHADOWED, edits) == SHADOWED.replace("ARG VERSION 2.0", "ARG VERSION 2.10")
