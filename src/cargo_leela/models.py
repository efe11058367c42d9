"""Data models for driving cargo against a workspace."""

from __future__ import annotations

import enum
import posixpath
import sys
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from cargo_leela.errors import PathOutsideWorkspace


class Phase(enum.Enum):
    """A cargo build phase, in the order they are run."""

    CHECK = "check"
    BUILD = "build"
    TEST = "test"

    @property
    def subcommand(self) -> str:
        return self.value


@dataclass(frozen=True)
class Options:
    """Extra cargo arguments supplied by the user."""

    additional_cargo_args: tuple[str, ...] = ()  # every invocation
    additional_cargo_test_args: tuple[str, ...] = ()  # `cargo test` only

    def __post_init__(self) -> None:
        # Accept lists from callers but keep the instance immutable.
        object.__setattr__(self, "additional_cargo_args", tuple(self.additional_cargo_args))
        object.__setattr__(
            self, "additional_cargo_test_args", tuple(self.additional_cargo_test_args)
        )


class StatusKind(enum.Enum):
    EXITED = "exited"
    SIGNALLED = "signalled"
    TIMED_OUT = "timed out"


@dataclass(frozen=True)
class ProcessStatus:
    """How a supervised child process finished."""

    kind: StatusKind
    code: int | None = None  # exit code, for EXITED
    signal: int | None = None  # signal number, for SIGNALLED
    elapsed: float = field(default=0.0, compare=False)

    @classmethod
    def exited(cls, code: int, elapsed: float = 0.0) -> ProcessStatus:
        return cls(StatusKind.EXITED, code=code, elapsed=elapsed)

    @classmethod
    def signalled(cls, signum: int, elapsed: float = 0.0) -> ProcessStatus:
        return cls(StatusKind.SIGNALLED, signal=signum, elapsed=elapsed)

    @classmethod
    def timed_out(cls, elapsed: float = 0.0) -> ProcessStatus:
        return cls(StatusKind.TIMED_OUT, elapsed=elapsed)

    @property
    def success(self) -> bool:
        return self.kind is StatusKind.EXITED and self.code == 0

    @property
    def is_timeout(self) -> bool:
        return self.kind is StatusKind.TIMED_OUT

    def __str__(self) -> str:
        if self.kind is StatusKind.EXITED:
            return "success" if self.code == 0 else f"failure (exit code {self.code})"
        if self.kind is StatusKind.SIGNALLED:
            return f"signalled ({self.signal})"
        return "timeout"


@dataclass(frozen=True, order=True)
class TreeRelativePath:
    """A path relative to the top of the workspace, always using ``/``."""

    path: str

    def __post_init__(self) -> None:
        if PurePosixPath(self.path).is_absolute():
            raise ValueError(f"tree-relative path must not be absolute: {self.path!r}")

    @classmethod
    def from_absolute(cls, path: str | Path, root: str | Path) -> TreeRelativePath:
        """Strip ``root`` from the front of ``path``.

        Raises PathOutsideWorkspace if ``path`` is not beneath ``root``.
        """
        try:
            rel = Path(path).relative_to(Path(root))
        except ValueError:
            raise PathOutsideWorkspace(path, root) from None
        if rel == Path("."):
            raise PathOutsideWorkspace(path, root)
        return cls(rel.as_posix())

    def within(self, root: str | Path) -> Path:
        return Path(root).joinpath(*self.path.split(posixpath.sep))

    def __str__(self) -> str:
        return self.path


@dataclass(frozen=True, order=True)
class SourceFile:
    """A source file that is a candidate for mutation.

    Ordering and equality look only at the tree-relative path. The package
    name is interned so that every file in a package shares one string.
    """

    tree_relative_path: TreeRelativePath
    package_name: str = field(compare=False)
    workspace_root: Path = field(compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "package_name", sys.intern(self.package_name))

    @property
    def absolute_path(self) -> Path:
        return self.tree_relative_path.within(self.workspace_root)

    def read_code(self) -> str:
        return self.absolute_path.read_text(encoding="utf-8")


@dataclass(frozen=True)
class BuildDir:
    """A directory cargo runs in; created and cleaned up elsewhere."""

    path: Path
