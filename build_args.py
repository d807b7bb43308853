"""Positional table of ``ARG`` declarations in a Dockerfile.

Every declaration is kept, ordered by position, so a ``${NAME}`` reference is
resolved against the last declaration above it.  Values can be changed in
memory and written back later through :func:`text_patch.apply_edits`.
"""

import bisect
import re
import zlib
from dataclasses import dataclass, field
from typing import Dict, Iterator, List

from text_patch import Edit

ARG_PATTERN = re.compile(
    r'^ARG[ \t]+(?P<name>[^\s=]+)(?:[ \t]*=[ \t]*|[ \t]+)(?P<value>.*?)[ \t\r]*$',
    re.MULTILINE | re.IGNORECASE,
)


class UnknownBuildArgError(LookupError):
    """A build argument (or its fingerprint) has no matching declaration."""


@dataclass
class BuildArg:
    """One ``ARG`` declaration.

    ``offset`` is where the statement starts in the original text and never
    moves.  ``value_offset`` follows the value through edits made to the text.
    """
    name: str
    value: str
    offset: int
    value_offset: int
    value_length: int
    key: str
    original_value: str = field(init=False)

    def __post_init__(self):
        self.original_value = self.value

    @property
    def changed(self) -> bool:
        return self.value != self.original_value


class BuildArgs:
    def __init__(self, contents: str):
        self._args: Dict[str, List[BuildArg]] = {}
        self._by_key: Dict[str, BuildArg] = {}

        for match in ARG_PATTERN.finditer(contents):
            name, value = match.group('name', 'value')
            arg = BuildArg(
                name=name,
                value=value,
                offset=match.start(),
                value_offset=match.start('value'),
                value_length=len(value),
                key=self.fingerprint(name, match.start('value')),
            )
            self._args.setdefault(name, []).append(arg)
            self._by_key[arg.key] = arg

    @staticmethod
    def fingerprint(name: str, value_offset: int) -> str:
        """Correlation key for a declaration; stable for the whole run."""
        return '%08x' % zlib.crc32(f"{name}\0{value_offset}".encode('utf-8'))

    def __iter__(self) -> Iterator[BuildArg]:
        for declarations in self._args.values():
            yield from declarations

    def __len__(self) -> int:
        return len(self._by_key)

    def __contains__(self, name: str) -> bool:
        return self.has(name)

    def has(self, name: str) -> bool:
        return name in self._args

    def get(self, name: str, up_to_offset: int) -> BuildArg:
        """Return the last declaration of ``name`` starting at or before ``up_to_offset``."""
        declarations = self._args.get(name)
        if not declarations:
            raise UnknownBuildArgError(f'Argument "{name}" is unknown.')

        index = bisect.bisect_right([arg.offset for arg in declarations], up_to_offset) - 1
        if index < 0:
            raise UnknownBuildArgError(f'Argument "{name}" is not declared before offset {up_to_offset}.')

        return declarations[index]

    def set(self, name: str, value: str, up_to_offset: int) -> None:
        self.get(name, up_to_offset).value = value

    def hash_of(self, name: str, up_to_offset: int) -> str:
        return self.get(name, up_to_offset).key

    def get_by_hash(self, key: str) -> BuildArg:
        try:
            return self._by_key[key]
        except KeyError:
            raise UnknownBuildArgError(f'Argument hash "{key}" is unknown.') from None

    def set_by_hash(self, key: str, value: str) -> None:
        self.get_by_hash(key).value = value

    def shift_offsets_from(self, from_offset: int, delta: int) -> None:
        """Move every value at or after ``from_offset`` by ``delta`` characters.

        Call once per length-changing edit, in ascending order of the edits.
        """
        if delta == 0:
            return

        for arg in self:
            if arg.value_offset >= from_offset:
                arg.value_offset += delta

    def pending_edits(self) -> List[Edit]:
        """Edits writing every changed value back, ordered by position."""
        return sorted(
            Edit(arg.value_offset, arg.value_length, arg.value)
            for arg in self if arg.changed
        )
