"""Shared fixtures: stand-ins for the cargo binary."""

import os
import stat
import sys
import textwrap

import pytest

# Walks up from the cwd the way `cargo locate-project` does.
LOCATE_PROJECT = """
import json, pathlib, sys
here = pathlib.Path.cwd()
for d in [here, *here.parents]:
    if (d / "Cargo.toml").is_file():
        print(json.dumps({"root": str(d / "Cargo.toml")}))
        sys.exit(0)
print("error: could not find `Cargo.toml` in " + str(here), file=sys.stderr)
sys.exit(101)
"""


@pytest.fixture
def fake_cargo(tmp_path):
    """Return a factory that writes an executable Python script and returns its path."""
    if os.name != "posix":
        pytest.skip("fake cargo scripts need a POSIX shebang")

    counter = iter(range(1000))

    def make(body: str) -> str:
        script_dir = tmp_path / "bin"
        script_dir.mkdir(exist_ok=True)
        script = script_dir / f"cargo{next(counter)}"
        script.write_text(f"#!{sys.executable}\n" + textwrap.dedent(body))
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(script)

    return make


@pytest.fixture
def locate_project_cargo(fake_cargo):
    """A fake cargo that only understands `locate-project`."""
    return fake_cargo(LOCATE_PROJECT)
