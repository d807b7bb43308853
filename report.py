"""
Run summary for docker_deps: console sections and GitHub Action outputs.

The summary is printed to stdout; diagnostics stay on the logging stream.
"""

import logging
import sys
import uuid
from dataclasses import dataclass, field
from typing import List, Optional, TextIO

from manifests import ChangeRecord

logger = logging.getLogger(__name__)

DOCKERFILE_TITLE = 'Dockerfile'
COMPOSE_TITLE = 'docker-compose.yml'

_OUTPUT_ESCAPES = (('%', '%25'), ('\n', '%0A'), ('\r', '%0D'))


@dataclass
class UpdateSummary:
    dockerfile_changes: List[ChangeRecord] = field(default_factory=list)
    compose_changes: List[ChangeRecord] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.dockerfile_changes) + len(self.compose_changes)

    def sections(self):
        return [(DOCKERFILE_TITLE, self.dockerfile_changes), (COMPOSE_TITLE, self.compose_changes)]


def escape_output(value: str) -> str:
    """Encode a multi-line value for a single-line workflow command."""
    for old, new in _OUTPUT_ESCAPES:
        value = value.replace(old, new)
    return value


def build_message(summary: UpdateSummary) -> str:
    """Markdown message listing every change, e.g. for a commit or PR body."""
    messages = []
    for title, changes in summary.sections():
        if not changes:
            continue
        lines = [f'{title} updates:']
        lines.extend(f'* Update **{c.image}** from `{c.from_version}` to `{c.to_version}`.' for c in changes)
        messages.append('\n'.join(lines))
    return '\n\n'.join(messages)


def print_summary(summary: UpdateSummary, stream: Optional[TextIO] = None) -> None:
    """Print one collapsible group per manifest."""
    stream = stream or sys.stdout
    for title, changes in summary.sections():
        print(f'::group::{title} updates', file=stream)
        if changes:
            for c in changes:
                print(f'* Update {c.image} from {c.from_version} to {c.to_version}.', file=stream)
        else:
            print(f'No {title} updates detected.', file=stream)
        print('::endgroup::', file=stream)


def write_outputs(summary: UpdateSummary, output_file: Optional[str] = None,
                  stream: Optional[TextIO] = None) -> None:
    """Publish ``updates-count`` and ``message``.

    With ``output_file`` (the ``GITHUB_OUTPUT`` file) the values are appended
    there, the message as a delimited block.  Otherwise legacy
    ``::set-output`` commands are printed with the message escaped.
    """
    message = build_message(summary)

    if output_file:
        delimiter = f'ghadelimiter_{uuid.uuid4()}'
        with open(output_file, 'a', encoding='utf-8') as f:
            f.write(f'updates-count={summary.count}\n')
            f.write(f'message<<{delimiter}\n{message}\n{delimiter}\n')
        logger.debug("Outputs written to %s", output_file)
        return

    stream = stream or sys.stdout
    print(f'::set-output name=updates-count::{summary.count}', file=stream)
    print(f'::set-output name=message::{escape_output(message)}', file=stream)
