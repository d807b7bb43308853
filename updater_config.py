"""Run configuration, parsed once at startup and passed to every component."""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, Mapping, Optional, Union

from registry_client import ImageName

logger = logging.getLogger(__name__)

DOCKERFILE_NAME = "Dockerfile"
COMPOSE_FILE_NAME = "docker-compose.yml"

# Repositories known to keep compatible releases under a major.minor line
DEFAULT_STRICT_REPOS: Dict[str, bool] = {
    'library/composer': True,
    'phpmyadmin/phpmyadmin': True,
}

_TRUE_VALUES = {'1', 'true', 'yes', 'on'}
_FALSE_VALUES = {'0', 'false', 'no', 'off', ''}

_LIST_SEPARATOR = re.compile(r'\s*,+\s*')
_POLICY_ENTRY = re.compile(r'([^\s,:]+)(?:\s*:\s*([^\s,]+))?')


class ConfigError(ValueError):
    """Invalid configuration input."""


def parse_bool(value: Union[str, bool, None], option: str) -> bool:
    if isinstance(value, bool):
        return value
    normalized = (value or '').strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ConfigError(f"{option}: '{value}' is not a boolean")


def parse_skip_list(value: Optional[str]) -> FrozenSet[str]:
    """Parse ``"nginx, Library/Redis"`` into lower-cased repository names."""
    return frozenset(name.lower() for name in _LIST_SEPARATOR.split((value or '').strip()) if name)


def parse_strict_repos(value: Optional[str]) -> Dict[str, bool]:
    """Parse ``"composer, node:false"`` into ``{qualified name: strict}``.

    A repository listed without a value is strict.
    """
    overrides = {}
    for match in _POLICY_ENTRY.finditer((value or '').strip()):
        repo, flag = match.groups()
        overrides[ImageName.parse(repo).qualified] = parse_bool(
            flag if flag is not None else 'true', f'strict repos ({repo})'
        )
    return overrides


@dataclass(frozen=True)
class UpdaterConfig:
    skip: FrozenSet[str] = frozenset()
    strict_repos: Mapping[str, bool] = field(default_factory=lambda: dict(DEFAULT_STRICT_REPOS))
    update_dockerfile: bool = True
    update_compose: bool = True
    dockerfile_path: Path = Path(DOCKERFILE_NAME)
    compose_path: Path = Path(COMPOSE_FILE_NAME)

    @classmethod
    def from_inputs(cls, skip_update: Optional[str] = '', strict_repos: Optional[str] = '',
                    update_dockerfile: Union[str, bool] = 'true',
                    update_compose: Union[str, bool] = 'true',
                    dockerfile_path: Union[str, Path, None] = None,
                    compose_path: Union[str, Path, None] = None) -> 'UpdaterConfig':
        """
        Build the configuration from raw string inputs.

        Args:
            skip_update: Comma separated repositories that are never checked
            strict_repos: Comma separated ``repo[:bool]`` versioning policy overrides
            update_dockerfile: Whether to check the Dockerfile
            update_compose: Whether to check the compose file
            dockerfile_path: Dockerfile location (default: ./Dockerfile)
            compose_path: Compose file location (default: ./docker-compose.yml)

        Raises:
            ConfigError: When a boolean input cannot be parsed
        """
        dockerfile = Path(dockerfile_path or Path.cwd() / DOCKERFILE_NAME)
        compose = Path(compose_path or Path.cwd() / COMPOSE_FILE_NAME)

        policies = dict(DEFAULT_STRICT_REPOS)
        policies.update(parse_strict_repos(strict_repos))

        check_dockerfile = parse_bool(update_dockerfile, 'update-dockerfile')
        if check_dockerfile and not dockerfile.is_file():
            logger.info("%s not found, Dockerfile check disabled", dockerfile)
            check_dockerfile = False

        check_compose = parse_bool(update_compose, 'update-docker-compose')
        if check_compose and not compose.is_file():
            logger.info("%s not found, docker-compose check disabled", compose)
            check_compose = False

        return cls(
            skip=parse_skip_list(skip_update),
            strict_repos=policies,
            update_dockerfile=check_dockerfile,
            update_compose=check_compose,
            dockerfile_path=dockerfile,
            compose_path=compose,
        )

    def is_skipped(self, repo: str) -> bool:
        """True if ``repo`` is listed either as written or by its qualified name."""
        return repo.lower() in self.skip or ImageName.parse(repo).qualified.lower() in self.skip

    def is_strict(self, image: ImageName) -> bool:
        return self.strict_repos.get(image.qualified, False)
