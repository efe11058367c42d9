"""Exceptions raised while driving cargo."""

from __future__ import annotations

import os


class CargoLeelaError(Exception):
    """Base class for all cargo-leela errors."""


class UsageError(CargoLeelaError):
    """The caller asked for something impossible, such as a root outside any directory."""


class ExternalToolFailure(CargoLeelaError):
    """A one-shot cargo subprocess could not be run or exited non-zero."""

    def __init__(self, tool: str, detail: str) -> None:
        super().__init__(f"{tool}: {detail}")
        self.tool = tool
        self.detail = detail


class ParseError(CargoLeelaError):
    """Output from cargo was not in the expected form."""

    def __init__(self, what: str, raw: str) -> None:
        super().__init__(f"{what}: {raw!r}")
        self.what = what
        self.raw = raw


class PathOutsideWorkspace(CargoLeelaError):
    """A target's source path does not lie beneath the workspace root."""

    def __init__(self, path: str | os.PathLike[str], root: str | os.PathLike[str]) -> None:
        super().__init__(f"{os.fspath(path)!r} is not in {os.fspath(root)!r}")
        self.path = path
        self.root = root


class Interrupted(CargoLeelaError):
    """Cancellation was requested; takes precedence over any other outcome."""

    def __init__(self, message: str = "interrupted") -> None:
        super().__init__(message)
