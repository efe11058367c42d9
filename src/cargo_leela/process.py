"""Child processes with a timeout, run in their own process group."""

from __future__ import annotations

import logging
import os
import shlex
import signal
import subprocess
import time
from collections.abc import Mapping, Sequence
from pathlib import Path

from cargo_leela.errors import ExternalToolFailure
from cargo_leela.interrupt import CancellationToken
from cargo_leela.log_file import LogFile
from cargo_leela.models import ProcessStatus

logger = logging.getLogger(__name__)

# How long a terminated child gets to exit before it is killed.
TERMINATE_GRACE = 5.0


class Process:
    """A running child whose output goes to a log file.

    The child is started in a new session so that terminating it also stops
    anything it spawned, such as test binaries run by ``cargo test``.
    """

    def __init__(
        self,
        child: subprocess.Popen[bytes],
        start: float,
        timeout: float,
        token: CancellationToken | None = None,
    ) -> None:
        self._child = child
        self._start = start
        self.timeout = timeout
        self._token = token

    @classmethod
    def start(
        cls,
        argv: Sequence[str],
        env: Sequence[tuple[str, str]],
        cwd: str | Path,
        timeout: float,
        log_file: LogFile,
        token: CancellationToken | None = None,
        base_env: Mapping[str, str] | None = None,
    ) -> Process:
        """Start `argv` with `env` layered over `base_env`, or over os.environ when that is None."""
        start = time.monotonic()
        quoted_argv = shlex.join(argv)
        log_file.message(quoted_argv)
        logger.debug("start process: %s in %s", quoted_argv, cwd)
        child_env = dict(os.environ if base_env is None else base_env)
        child_env.update(env)
        try:
            with log_file.open_append() as out:
                child = subprocess.Popen(
                    list(argv),
                    cwd=os.fspath(cwd),
                    env=child_env,
                    stdin=subprocess.DEVNULL,
                    stdout=out,
                    stderr=subprocess.STDOUT,
                    start_new_session=os.name == "posix",
                )
        except OSError as e:
            raise ExternalToolFailure(argv[0], f"failed to start in {os.fspath(cwd)}: {e}") from e
        return cls(child, start, timeout, token)

    @property
    def pid(self) -> int:
        return self._child.pid

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self._start

    def poll(self) -> ProcessStatus | None:
        """Check the child without blocking.

        Returns None while it is still running within its timeout. A child
        that overruns is terminated and reported as timed out. If the token
        has been cancelled the child is terminated and Interrupted is raised.
        """
        elapsed = self.elapsed
        if elapsed > self.timeout:
            logger.info("timeout after %.3fs, terminating child process", elapsed)
            self.terminate()
            return ProcessStatus.timed_out(elapsed)
        if self._token is not None and self._token.cancelled:
            logger.debug("interrupted, terminating child process")
            self.terminate()
            self._token.check()
        returncode = self._child.poll()
        if returncode is None:
            return None
        if returncode < 0:
            return ProcessStatus.signalled(-returncode, elapsed)
        return ProcessStatus.exited(returncode, elapsed)

    def terminate(self) -> None:
        """Stop the child and its process group, then reap it."""
        if self._child.poll() is not None:
            return
        self._signal_group(signal.SIGTERM)
        try:
            self._child.wait(timeout=TERMINATE_GRACE)
        except subprocess.TimeoutExpired:
            logger.info("child %d did not exit after SIGTERM, killing", self._child.pid)
            self._signal_group(getattr(signal, "SIGKILL", signal.SIGTERM))
            self._child.wait()

    def _signal_group(self, signum: int) -> None:
        try:
            if os.name == "posix":
                os.killpg(self._child.pid, signum)
            else:
                self._child.terminate()
        except ProcessLookupError:
            pass


def get_command_output(argv: Sequence[str], cwd: str | Path) -> str:
    """Run a short-lived command and return its stdout.

    Raises ExternalToolFailure if the command can't be started or exits
    non-zero; stderr is included in the message.
    """
    logger.debug("get output of %s in %s", shlex.join(argv), cwd)
    try:
        result = subprocess.run(
            list(argv),
            cwd=os.fspath(cwd),
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
            check=True,
        )
    except subprocess.CalledProcessError as e:
        raise ExternalToolFailure(
            shlex.join(argv),
            f"exited with code {e.returncode}: {(e.stderr or '').strip()}",
        ) from e
    except OSError as e:
        raise ExternalToolFailure(shlex.join(argv), f"failed to start: {e}") from e
    return result.stdout
