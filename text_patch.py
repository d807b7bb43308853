"""In-place text patching for manifest files.

All edits handed to :func:`apply_edits` are expressed against the same input
text. They are applied in ascending offset order while the output is built,
so a replacement that changes length never disturbs the edits after it.
"""

from typing import Iterable, List, NamedTuple


class Edit(NamedTuple):
    """Replace ``length`` characters at ``offset`` with ``replacement``."""
    offset: int
    length: int
    replacement: str

    @property
    def delta(self) -> int:
        return len(self.replacement) - self.length


def apply_edits(text: str, edits: Iterable[Edit]) -> str:
    """Return ``text`` with every edit applied.

    Raises ValueError when two edits overlap or an edit falls outside the text.
    """
    pieces: List[str] = []
    cursor = 0

    for edit in sorted(edits):
        if edit.offset < cursor:
            raise ValueError(f"Edit at offset {edit.offset} overlaps a previous edit ending at {cursor}")
        end = edit.offset + edit.length
        if edit.length < 0 or end > len(text):
            raise ValueError(f"Edit {edit.offset}:{end} is outside the text (length {len(text)})")

        pieces.append(text[cursor:edit.offset])
        pieces.append(edit.replacement)
        cursor = end

    if not pieces:
        return text

    pieces.append(text[cursor:])
    return ''.join(pieces)
