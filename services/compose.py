"""
Container engine driver.

Thin wrapper over the ``docker compose`` CLI. Every call is scoped by a
compose project name so instances never share engine resources. A non-zero
exit code is the only failure signal; stderr is passed through verbatim.
"""

import logging
import shlex
import subprocess
from collections import namedtuple

logger = logging.getLogger(__name__)

DEFAULT_COMPOSE_COMMAND = 'docker compose'
ENGINE_NOT_FOUND_CODE = 127


class ComposeResult(namedtuple('ComposeResult', ['code', 'stdout', 'stderr'])):
    __slots__ = ()

    @property
    def ok(self):
        return self.code == 0


class ComposeRunner:
    """Runs compose up/down/logs for one workdir at a time"""

    def __init__(self, command=DEFAULT_COMPOSE_COMMAND):
        if isinstance(command, str):
            command = shlex.split(command)
        self.command = list(command)

    def _run(self, compose_file, project, action, cwd):
        cmd = self.command + ['-f', compose_file, '-p', project] + action
        logger.debug(f"Running {' '.join(cmd)} (cwd={cwd})")
        try:
            completed = subprocess.run(
                cmd,
                cwd=cwd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                encoding='utf-8',
                errors='replace',
            )
        except FileNotFoundError as e:
            logger.error(f"Container engine not available: {e}")
            return ComposeResult(ENGINE_NOT_FOUND_CODE, '', str(e))

        if completed.returncode != 0:
            logger.warning(
                f"compose {action[0]} for project {project} exited {completed.returncode}: "
                f"{completed.stderr.strip()[:500]}"
            )
        return ComposeResult(completed.returncode, completed.stdout, completed.stderr)

    def up(self, compose_file, project, cwd):
        """Bring all services up detached"""
        return self._run(compose_file, project, ['up', '-d'], cwd)

    def down(self, compose_file, project, cwd):
        return self._run(compose_file, project, ['down'], cwd)

    def logs(self, compose_file, project, cwd, tail):
        """Last ``tail`` lines across all services"""
        return self._run(compose_file, project, ['logs', '--tail', str(tail)], cwd)
