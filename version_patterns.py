"""Version tag pattern building and newest-tag selection.

A pinned version such as ``8.1.2-fpm-alpine3.14`` is turned into a regex that
accepts every registry tag sharing its anchor (``8`` or ``8.1`` depending on
the repository's versioning policy) and its literal parts, while the
remaining numeric components are free to move.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple

from build_args import BuildArgs
from text_patch import Edit, apply_edits


# ---------------------------------------------------------------------------
# Token Patterns
# ---------------------------------------------------------------------------

# Two or more dot-separated digit groups; a lone digit group only at the start
_NUMERIC_LEADING = re.compile(r'(\d+(?:\.\d+)+|^\d+)')
_NUMERIC = re.compile(r'(\d+(?:\.\d+)+)')

PLACEHOLDER = re.compile(r'\$\{([^}:]+)\}')

_WILDCARD = r'\.[\d.]+'

_DIGIT_RUNS = re.compile(r'(\d+)')

LOOSE_ANCHOR_WIDTH = 1
STRICT_ANCHOR_WIDTH = 2


class VersionToken(NamedTuple):
    text: str
    numeric: bool


# ---------------------------------------------------------------------------
# Internal Helper Functions
# ---------------------------------------------------------------------------

def _anchor_width(strict: bool) -> int:
    return STRICT_ANCHOR_WIDTH if strict else LOOSE_ANCHOR_WIDTH


def _numeric_regex(token: str, fixed: int) -> str:
    """Keep the first ``fixed`` components of ``token`` and wildcard the rest."""
    components = token.split('.')
    if len(components) <= fixed:
        return re.escape(token)
    return re.escape('.'.join(components[:fixed])) + _WILDCARD


def _version_regex(text: str, strict: bool, anchored: bool = False,
                   leading: bool = True) -> Tuple[str, bool]:
    """Build the regex body for ``text``.

    Returns the body and whether the anchor token has been consumed, so the
    caller can continue with the next segment of a split version.
    """
    parts = []
    for token in tokenize_version(text, leading=leading):
        if token.numeric:
            parts.append(_numeric_regex(token.text, 1 if anchored else _anchor_width(strict)))
            anchored = True
        else:
            parts.append(re.escape(token.text))
    return ''.join(parts), anchored


def _update_pattern(version: str, strict: bool, build_args: BuildArgs,
                    position: int) -> Tuple[re.Pattern, Dict[str, str]]:
    """Build the update-and-capture pattern from the raw (uninterpolated) version.

    Every ``${NAME}`` becomes a named group whose name carries the fingerprint
    of the declaration it resolved to.
    """
    parts = []
    groups: Dict[str, str] = {}
    anchored = False

    for index, piece in enumerate(PLACEHOLDER.split(version)):
        if index % 2:
            key = build_args.hash_of(piece, position)
            group = f'p_{key}_{index // 2}'
            groups[group] = key
            parts.append(f'(?P<{group}>.+?)')
            anchored = True
        elif piece:
            body, anchored = _version_regex(piece, strict, anchored, leading=index == 0)
            parts.append(body)

    return re.compile('^' + ''.join(parts) + '$'), groups


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def tokenize_version(version: str, leading: bool = True) -> List[VersionToken]:
    """Split a version into alternating literal and numeric tokens.

    ``8.1.2-alpine3.14`` gives ``8.1.2`` (numeric), ``-alpine`` (literal) and
    ``3.14`` (numeric).  With ``leading`` set, a bare digit group opening the
    string (``14`` in ``14-alpine``) is a numeric token too.
    """
    splitter = _NUMERIC_LEADING if leading else _NUMERIC
    tokens = []
    for index, part in enumerate(splitter.split(version)):
        if index % 2:
            tokens.append(VersionToken(part, True))
        elif part:
            tokens.append(VersionToken(part, False))
    return tokens


def build_candidate_pattern(version: str, strict: bool = False) -> re.Pattern:
    """Anchored regex accepting tags compatible with ``version``."""
    body, _ = _version_regex(version, strict)
    return re.compile('^' + body + '$')


def interpolate(version: str, build_args: BuildArgs, position: int) -> str:
    """Resolve ``${NAME}`` placeholders against the declarations above ``position``.

    Raises UnknownBuildArgError for an undeclared name.
    """
    return PLACEHOLDER.sub(lambda m: build_args.get(m.group(1), position).value, version)


@dataclass
class VersionPatterns:
    """Patterns derived from one pinned version."""
    version: str
    interpolated: str
    candidate: re.Pattern
    update: Optional[re.Pattern] = None
    groups: Dict[str, str] = field(default_factory=dict)

    def accepts(self, tag: str) -> bool:
        if not self.candidate.match(tag):
            return False
        return self.update is None or bool(self.update.match(tag))

    def rewrite(self, tag: str, build_args: Optional[BuildArgs] = None) -> str:
        """Return the text that replaces the pinned version to pin ``tag``.

        Substrings captured by placeholder groups are stored into their build
        arguments and replaced by the ``${NAME}`` reference again.
        """
        if self.update is None or not self.groups:
            return tag

        match = self.update.match(tag)
        if match is None:
            raise ValueError(f"Tag '{tag}' does not match update pattern '{self.update.pattern}'")

        edits = []
        for group, key in self.groups.items():
            build_args.set_by_hash(key, match.group(group))
            name = build_args.get_by_hash(key).name
            edits.append(Edit(match.start(group), len(match.group(group)), '${%s}' % name))

        return apply_edits(tag, edits)


def build_version_patterns(version: str, strict: bool = False,
                           build_args: Optional[BuildArgs] = None,
                           position: int = 0) -> VersionPatterns:
    """Build the patterns for a pinned version.

    Without ``build_args`` (compose files) only the candidate pattern is
    built.  With them, placeholders are interpolated for comparison and an
    update-and-capture pattern is added.
    """
    if build_args is None:
        return VersionPatterns(version, version, build_candidate_pattern(version, strict))

    interpolated = interpolate(version, build_args, position)
    update, groups = _update_pattern(version, strict, build_args, position)
    return VersionPatterns(
        version=version,
        interpolated=interpolated,
        candidate=build_candidate_pattern(interpolated, strict),
        update=update,
        groups=groups,
    )


def natural_sort_key(tag: str) -> list:
    """Case-insensitive natural ordering key: digit runs compare as numbers."""
    return [int(part) if index % 2 else part.lower()
            for index, part in enumerate(_DIGIT_RUNS.split(tag))]


def select_newest_tag(tags: Iterable[str], patterns: VersionPatterns) -> Optional[str]:
    """Return the highest-ranked accepted tag if it is newer than the pinned version."""
    candidates = [tag for tag in sorted(tags, key=natural_sort_key, reverse=True)
                  if patterns.accepts(tag)]
    if not candidates:
        return None

    newest = candidates[0]
    if newest == patterns.interpolated:
        return None
    # Never move backwards when the pinned tag is missing from the registry
    if natural_sort_key(newest) < natural_sort_key(patterns.interpolated):
        return None
    return newest
