"""Run cargo as a subprocess, with timeouts and cancellation."""

from __future__ import annotations

import json
import logging
import os
import time
from collections.abc import Mapping
from pathlib import Path
from typing import Protocol

from cargo_leela.errors import ExternalToolFailure, ParseError, UsageError
from cargo_leela.interrupt import CancellationToken
from cargo_leela.log_file import LogFile
from cargo_leela.models import BuildDir, Options, Phase, ProcessStatus
from cargo_leela.process import Process, get_command_output

logger = logging.getLogger(__name__)

# How frequently to check if cargo finished.
WAIT_POLL_INTERVAL = 0.05

# Field separator in CARGO_ENCODED_RUSTFLAGS.
ENCODED_RUSTFLAGS_SEPARATOR = "\x1f"

# Mutants often trip lints, which must not make the build fail.
CAP_LINTS_FLAG = "--cap-lints=allow"


class ProgressReporter(Protocol):
    def tick(self) -> None:
        """Called periodically while a child process is still running."""


class NullProgress:
    def tick(self) -> None:
        pass


def _environ(env: Mapping[str, str] | None) -> Mapping[str, str]:
    return os.environ if env is None else env


def _is_text(value: object) -> bool:
    if not isinstance(value, str):
        return False
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        # Undecodable bytes show up as lone surrogates in os.environ.
        return False
    return True


def cargo_bin(env: Mapping[str, str] | None = None) -> str:
    """Return the name of the cargo binary.

    When run as a cargo subcommand, ``$CARGO`` names the cargo that invoked
    us, so the matching toolchain is used.
    """
    return _environ(env).get("CARGO") or "cargo"


def cargo_argv(
    package_name: str | None,
    phase: Phase,
    options: Options,
    env: Mapping[str, str] | None = None,
) -> list[str]:
    """Make the argv for a cargo check/build/test, including the cargo binary as argv[0]."""
    argv = [cargo_bin(env), phase.subcommand]
    if phase in (Phase.CHECK, Phase.BUILD):
        argv.append("--tests")
    if package_name is not None:
        argv.extend(["--package", package_name])
    else:
        argv.append("--workspace")
    argv.extend(options.additional_cargo_args)
    if phase is Phase.TEST:
        argv.extend(options.additional_cargo_test_args)
    return argv


def rustflags(env: Mapping[str, str] | None = None) -> str:
    """Return the CARGO_ENCODED_RUSTFLAGS value to give cargo, with lints capped.

    Existing flags come from CARGO_ENCODED_RUSTFLAGS, or failing that
    RUSTFLAGS. Cargo config files are not read.
    """
    environ = _environ(env)
    encoded = environ.get("CARGO_ENCODED_RUSTFLAGS")
    plain = environ.get("RUSTFLAGS")
    if encoded is not None:
        assert _is_text(encoded), "CARGO_ENCODED_RUSTFLAGS is not valid UTF-8"
        flags = encoded.split(ENCODED_RUSTFLAGS_SEPARATOR)
    elif plain is not None:
        assert _is_text(plain), "RUSTFLAGS is not valid UTF-8"
        flags = plain.split(" ")
    else:
        flags = []
    flags.append(CAP_LINTS_FLAG)
    logger.debug("adjusted rustflags: %r", flags)
    return ENCODED_RUSTFLAGS_SEPARATOR.join(flags)


def locate_cargo_toml(path: str | Path, env: Mapping[str, str] | None = None) -> Path:
    """Run ``cargo locate-project`` to find the Cargo.toml enclosing ``path``."""
    path = Path(path)
    if not path.is_dir():
        raise UsageError(f"{path} is not a directory")
    try:
        stdout = get_command_output([cargo_bin(env), "locate-project"], path)
    except ExternalToolFailure as e:
        raise ExternalToolFailure("cargo locate-project", f"in {path}: {e.detail}") from e
    try:
        val = json.loads(stdout)
    except json.JSONDecodeError as e:
        raise ParseError("parse cargo locate-project output", stdout) from e
    root = val.get("root") if isinstance(val, dict) else None
    if not isinstance(root, str):
        raise ParseError("cargo locate-project output has no root", stdout)
    cargo_toml_path = Path(root)
    assert cargo_toml_path.is_file(), f"{cargo_toml_path} does not exist"
    return cargo_toml_path


def find_root(path: str | Path, env: Mapping[str, str] | None = None) -> Path:
    """Return the directory of the cargo project enclosing ``path``."""
    root = locate_cargo_toml(path, env).parent
    assert root.is_dir()
    return root


def run_cargo(
    build_dir: BuildDir,
    argv: list[str],
    log_file: LogFile,
    timeout: float,
    progress: ProgressReporter,
    rustflags: str,
    token: CancellationToken | None = None,
    base_env: Mapping[str, str] | None = None,
) -> ProcessStatus:
    """Run one cargo subprocess to completion or timeout.

    Raises Interrupted if the token is cancelled at any point, even if
    cargo itself finished. The child inherits `base_env`, or os.environ
    when that is None.
    """
    start = time.monotonic()
    # The tests might use Insta, which must not write snapshot updates into
    # the source tree, let alone write them and then let the test pass.
    env = [
        ("CARGO_ENCODED_RUSTFLAGS", rustflags),
        ("INSTA_UPDATE", "no"),
    ]
    logger.debug("cargo env: %r", env)

    child = Process.start(argv, env, build_dir.path, timeout, log_file, token, base_env)
    while True:
        process_status = child.poll()
        if process_status is not None:
            break
        progress.tick()
        time.sleep(WAIT_POLL_INTERVAL)

    elapsed = time.monotonic() - start
    log_file.message(f"cargo result: {process_status} in {elapsed:.3f}s")
    logger.debug("cargo result: %s, elapsed %.3fs", process_status, elapsed)
    if token is not None:
        token.check()
    return process_status
