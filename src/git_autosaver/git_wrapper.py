import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .constants import APP_NAME, NON_INTERACTIVE_ENV

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class CommandResult:
    """The outcome of one git invocation.

    Attributes:
        exit_code (int): The process exit status.
        output (str): Combined stdout and stderr, decoded as UTF-8.
    """

    exit_code: int
    output: str

    @property
    def ok(self) -> bool:
        """Whether the command exited with status zero."""
        return self.exit_code == 0


class GitRunner:
    """Runs git commands as asyncio subprocesses.

    Commands never block the event loop: the caller awaits the result while
    other callbacks (debounce timers, new triggers) keep being served. Output
    is captured with stderr folded into stdout, since git reports most of its
    interesting conditions ("nothing to commit", "rejected") on stderr.

    Attributes:
        executable (str): The git binary to launch.
    """

    def __init__(self, executable: str = "git", env: dict[str, str] | None = None):
        """Initializes the runner.

        Args:
            executable (str, optional): Path or name of the git binary.
                                        Defaults to "git".
            env (dict[str, str] | None, optional): Extra environment variables
                                                   applied on top of the process
                                                   environment. Defaults to None.
        """
        self.executable = executable
        self._extra_env = env or {}

    def _environment(self) -> dict[str, str]:
        env = os.environ.copy()
        env.update(NON_INTERACTIVE_ENV)
        env.update(self._extra_env)
        return env

    async def run(self, args: list[str], cwd: str | Path) -> CommandResult:
        """Executes `git <args>` inside the given working directory.

        If the awaiting task is cancelled (for example by a deadline), the child
        process is killed and reaped before the cancellation propagates.

        Args:
            args (list[str]): Arguments passed to git, without the executable.
            cwd (str | Path): The directory the command runs in.

        Returns:
            CommandResult: The exit code and combined output.

        Raises:
            OSError: If the git executable cannot be launched.
        """
        logger.debug(f"RUN git {' '.join(args)} (cwd={cwd})")
        proc = await asyncio.create_subprocess_exec(
            self.executable,
            *args,
            cwd=str(cwd),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            env=self._environment(),
        )
        try:
            stdout, _ = await proc.communicate()
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise

        output = stdout.decode("utf-8", errors="replace") if stdout else ""
        return CommandResult(proc.returncode or 0, output)


def find_repo_root(path: Path) -> Path | None:
    """Locates the repository containing a file.

    Walks up from the file's directory looking for a `.git` entry (a directory
    for ordinary clones, a file for worktrees and submodules).

    Args:
        path (Path): A file or directory inside the working tree.

    Returns:
        Path | None: The repository root, or None if the path is not tracked.
    """
    start = path if path.is_dir() else path.parent
    for candidate in (start, *start.parents):
        if (candidate / ".git").exists():
            return candidate
    return None
