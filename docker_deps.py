#!/usr/bin/env python3
"""
Docker Dependency Updater

This script checks the base images of a Dockerfile and the service images of
a docker-compose.yml for newer version tags on their registries and pins the
newest compatible tag in place, leaving the rest of both files untouched.
"""

__version__ = "1.0.0"

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from manifests import ChangeRecord, ComposeProcessor, DockerfileProcessor, ManifestProcessor
from registry_client import RegistryClient
from report import UpdateSummary, print_summary, write_outputs
from updater_config import ConfigError, UpdaterConfig

EXIT_OK = 0
EXIT_SETUP_FAILURE = 1
EXIT_PROCESSING_FAILURE = 2


class DependencyUpdater:
    def __init__(self, config: UpdaterConfig, registry: Optional[RegistryClient] = None,
                 dry_run: bool = False, log_level: str = "INFO"):
        """
        Initialize the Dependency Updater.

        Args:
            config: Parsed run configuration
            registry: Registry client (a fresh one, with an empty cache, by default)
            dry_run: If True, only log what would be changed without writing files
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        """
        self.config = config
        self.dry_run = dry_run

        # Setup logging
        self.logger = self._setup_logging(log_level)

        self.registry = registry or RegistryClient()

    def _setup_logging(self, level: str) -> logging.Logger:
        """Setup logging configuration."""
        root = logging.getLogger()
        root.setLevel(getattr(logging, level.upper()))

        if not root.handlers:
            handler = logging.StreamHandler(sys.stderr)
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            root.addHandler(handler)

        return logging.getLogger('DependencyUpdater')

    @staticmethod
    def _read(path: Path) -> str:
        # newline='' keeps CRLF line endings byte for byte
        with open(path, 'r', encoding='utf-8', newline='') as f:
            return f.read()

    def _write(self, path: Path, contents: str) -> None:
        """Write ``contents`` through a temporary file and an atomic rename."""
        if self.dry_run:
            self.logger.info(f"[DRY RUN] Would write {path}")
            return

        temp_file = path.with_name(path.name + '.tmp')
        with open(temp_file, 'w', encoding='utf-8', newline='') as f:
            f.write(contents)
        temp_file.replace(path)

    def _update_file(self, path: Path, processor: ManifestProcessor) -> List[ChangeRecord]:
        self.logger.info(f"Checking {path}...")
        contents = self._read(path)
        result = processor.process(contents)

        if result.contents != contents:
            self._write(path, result.contents)
        return result.changes

    def update_dockerfile(self) -> List[ChangeRecord]:
        return self._update_file(self.config.dockerfile_path,
                                 DockerfileProcessor(self.config, self.registry))

    def update_compose(self) -> List[ChangeRecord]:
        return self._update_file(self.config.compose_path,
                                 ComposeProcessor(self.config, self.registry))

    def check_and_update(self) -> UpdateSummary:
        """Check the enabled manifests, Dockerfile first, and apply updates."""
        if self.dry_run:
            self.logger.info("=== DRY RUN MODE ===")

        summary = UpdateSummary()

        if self.config.update_dockerfile:
            summary.dockerfile_changes = self.update_dockerfile()
        else:
            self.logger.info("Dockerfile check disabled")

        if self.config.update_compose:
            summary.compose_changes = self.update_compose()
        else:
            self.logger.info("docker-compose check disabled")

        if summary.count:
            self.logger.info(f"{summary.count} update(s) found")
        else:
            self.logger.info("No updates found")

        return summary


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description='Update Dockerfile and docker-compose.yml image tags to their newest versions'
    )
    parser.add_argument(
        '--skip-update',
        default=os.environ.get('INPUT_SKIP-UPDATE', ''),
        help='Comma separated images that are never checked (env: INPUT_SKIP-UPDATE)'
    )
    parser.add_argument(
        '--strict-repos',
        default=os.environ.get('INPUT_SEMANTICALLY-VERSIONED-REPOS', ''),
        help='Comma separated repo[:bool] entries pinning major.minor instead of major '
             '(env: INPUT_SEMANTICALLY-VERSIONED-REPOS)'
    )
    parser.add_argument(
        '--update-dockerfile',
        default=os.environ.get('INPUT_UPDATE-DOCKERFILE') or 'true',
        help='Check the Dockerfile (env: INPUT_UPDATE-DOCKERFILE, default: true)'
    )
    parser.add_argument(
        '--update-docker-compose',
        default=os.environ.get('INPUT_UPDATE-DOCKER-COMPOSE') or 'true',
        help='Check docker-compose.yml (env: INPUT_UPDATE-DOCKER-COMPOSE, default: true)'
    )
    parser.add_argument(
        '--dockerfile',
        default=None,
        help='Path to the Dockerfile (default: ./Dockerfile)'
    )
    parser.add_argument(
        '--compose-file',
        default=None,
        help='Path to the compose file (default: ./docker-compose.yml)'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        default=os.environ.get('DRY_RUN', '').lower() == 'true',
        help='Show what would be updated without writing any file (env: DRY_RUN)'
    )
    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default=os.environ.get('LOG_LEVEL', 'INFO'),
        help='Logging level (env: LOG_LEVEL, default: INFO)'
    )

    args = parser.parse_args(argv)

    try:
        config = UpdaterConfig.from_inputs(
            skip_update=args.skip_update,
            strict_repos=args.strict_repos,
            update_dockerfile=args.update_dockerfile,
            update_compose=args.update_docker_compose,
            dockerfile_path=args.dockerfile,
            compose_path=args.compose_file,
        )
        updater = DependencyUpdater(config, dry_run=args.dry_run, log_level=args.log_level)
    except (ConfigError, OSError) as e:
        logging.error(f"Setup failed: {e}")
        return EXIT_SETUP_FAILURE

    try:
        summary = updater.check_and_update()
    except Exception as e:
        updater.logger.exception(f"Fatal error: {e}")
        return EXIT_PROCESSING_FAILURE

    print_summary(summary)
    write_outputs(summary, os.environ.get('GITHUB_OUTPUT'))
    return EXIT_OK


if __name__ == '__main__':
    sys.exit(main())
