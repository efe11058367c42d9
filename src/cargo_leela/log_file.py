"""Per-scenario log files that collect cargo output and summary lines."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import BinaryIO

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


def _clean_filename(name: str) -> str:
    return _UNSAFE_CHARS.sub("_", name).strip("_") or "log"


class LogFile:
    """An append-only text log owned by one scenario at a time."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    @classmethod
    def create_in(cls, log_dir: str | Path, scenario_name: str) -> LogFile:
        """Create a new, uniquely named log file in ``log_dir``."""
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        basename = _clean_filename(scenario_name)
        attempt = 0
        while True:
            suffix = "" if attempt == 0 else f"_{attempt:03d}"
            path = log_dir / f"{basename}{suffix}.log"
            try:
                # "x" fails if another scenario already claimed this name.
                with open(path, "x", encoding="utf-8"):
                    pass
            except FileExistsError:
                attempt += 1
                continue
            return cls(path)

    def message(self, text: str) -> None:
        """Append one highlighted line."""
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(f"\n*** {text}\n")

    def open_append(self) -> BinaryIO:
        """Open for appending raw child-process output."""
        return open(self.path, "ab")

    def read(self) -> str:
        with open(self.path, encoding="utf-8", errors="replace") as f:
            return f.read()

    def __repr__(self) -> str:
        return f"LogFile({os.fspath(self.path)!r})"
