"""Dockerfile and docker-compose.yml image reference updaters.

Each processor makes one pass over the image references of a file, looks up
newer tags and returns the rewritten text with a list of changes.  Anything
that goes wrong for a single reference leaves that reference untouched.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from build_args import BuildArgs, UnknownBuildArgError
from registry_client import ImageName, MalformedResponseError, RegistryClient
from text_patch import Edit, apply_edits
from updater_config import UpdaterConfig
from version_patterns import PLACEHOLDER, VersionPatterns, build_version_patterns, select_newest_tag

logger = logging.getLogger(__name__)

FROM_PATTERN = re.compile(
    r'^FROM[ \t]+(?:--\S+[ \t]+)*(?P<repo>\S+):(?P<version>\S+?)(?:[ \t]+AS[ \t]+\S+)?[ \t\r]*$',
    re.MULTILINE | re.IGNORECASE,
)

COMPOSE_IMAGE_PATTERN = re.compile(
    r'^[ \t]*image:[ \t]*(?P<quote>["\']?)(?P<repo>[^\s"\'#]+):(?P<version>[^\s"\'#]+?)(?P=quote)[ \t\r]*$',
    re.MULTILINE,
)

_TAG_PATTERN = re.compile(r'^\w[\w.-]*$')


@dataclass(frozen=True)
class ChangeRecord:
    image: str
    from_version: str
    to_version: str


@dataclass
class ProcessResult:
    contents: str
    changes: List[ChangeRecord] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.changes)


class ManifestProcessor:
    """Shared lookup logic; subclasses implement :meth:`process`."""

    def __init__(self, config: UpdaterConfig, registry: RegistryClient):
        self.config = config
        self.registry = registry

    def process(self, contents: str) -> ProcessResult:
        raise NotImplementedError

    @staticmethod
    def _is_parseable(repo: str, version: str, placeholders: bool) -> bool:
        """Reject references that cannot be rewritten with confidence."""
        if '@' in repo or '$' in repo or repo.startswith('-'):
            return False
        if placeholders:
            version = PLACEHOLDER.sub('x', version)
        return '/' not in version and bool(_TAG_PATTERN.match(version))

    def _should_check(self, repo: str, version: str, placeholders: bool = False) -> bool:
        if not self._is_parseable(repo, version, placeholders):
            logger.debug("Ignoring unsupported image reference %s:%s", repo, version)
            return False
        if self.config.is_skipped(repo):
            logger.info("Skipping %s (skip-update)", repo)
            return False
        return True

    def _newest_tag(self, image: ImageName, patterns: VersionPatterns) -> Optional[str]:
        try:
            tags = self.registry.get_tags(image)
        except MalformedResponseError as e:
            logger.warning("%s", e)
            return None

        newest = select_newest_tag(tags, patterns)
        if newest is None:
            logger.info("%s:%s is up to date", image, patterns.interpolated)
        else:
            logger.info("%s: %s -> %s", image, patterns.interpolated, newest)
        return newest


class DockerfileProcessor(ManifestProcessor):
    """Updates ``FROM repo:tag`` lines, including tags built from ``ARG`` values."""

    def process(self, contents: str) -> ProcessResult:
        build_args = BuildArgs(contents)
        result = ProcessResult(contents)
        edits: List[Edit] = []
        shift = 0

        for match in FROM_PATTERN.finditer(contents):
            edit = self._process_from(match, build_args, result.changes, shift)
            if edit is not None:
                edits.append(edit)
                shift += edit.delta

        result.contents = apply_edits(contents, edits)
        result.contents = apply_edits(result.contents, build_args.pending_edits())
        return result

    def _process_from(self, match: re.Match, build_args: BuildArgs,
                      changes: List[ChangeRecord], shift: int) -> Optional[Edit]:
        """Check one FROM line; ``shift`` is the length change of earlier edits."""
        repo, version = match.group('repo', 'version')
        if not self._should_check(repo, version, placeholders=True):
            return None

        image = ImageName.parse(repo)
        try:
            patterns = build_version_patterns(version, self.config.is_strict(image),
                                              build_args, match.start())
        except UnknownBuildArgError as e:
            logger.warning("%s: %s", repo, e)
            return None

        newest = self._newest_tag(image, patterns)
        if newest is None:
            return None

        updated_version = patterns.rewrite(newest, build_args)
        edit = Edit(match.start('version'), len(version), updated_version)
        build_args.shift_offsets_from(match.start('version') + shift, edit.delta)

        changes.append(ChangeRecord(repo, patterns.interpolated, newest))
        return edit


class ComposeProcessor(ManifestProcessor):
    """Updates ``image: repo:tag`` lines of a compose file."""

    def process(self, contents: str) -> ProcessResult:
        result = ProcessResult(contents)
        edits = []

        for match in COMPOSE_IMAGE_PATTERN.finditer(contents):
            repo, version = match.group('repo', 'version')
            if not self._should_check(repo, version):
                continue

            image = ImageName.parse(repo)
            patterns = build_version_patterns(version, self.config.is_strict(image))
            newest = self._newest_tag(image, patterns)
            if newest is None:
                continue

            edits.append(Edit(match.start('version'), len(version), newest))
            result.changes.append(ChangeRecord(repo, version, newest))

        result.contents = apply_edits(contents, edits)
        return result
