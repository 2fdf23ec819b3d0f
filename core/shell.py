"""Subprocess execution behind a small runner protocol.

Verify, install, update, execute and global-install commands all go
through a CommandRunner so tests can substitute a fake.
"""

import logging
import subprocess
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        return self.returncode == 0


class CommandRunner(Protocol):
    def run(self, cmd: str | list[str], *, cwd: str = ".") -> CommandResult:
        ...


class LocalRunner:
    """Runs commands on the local machine.

    String commands go through the shell (verify/execute commands are
    user-supplied shell snippets); lists are executed directly.
    """

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout

    def run(self, cmd: str | list[str], *, cwd: str = ".") -> CommandResult:
        logger.debug("Running %s in %s", cmd, cwd)
        try:
            completed = subprocess.run(
                cmd,
                shell=isinstance(cmd, str),
                cwd=cwd,
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            return CommandResult(returncode=127, stderr=str(e))
        except subprocess.TimeoutExpired as e:
            return CommandResult(returncode=124, stderr=f"Timed out after {e.timeout}s")
        return CommandResult(completed.returncode, completed.stdout, completed.stderr)
