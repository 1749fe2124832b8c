"""Shared fixtures: a stand-in renderer that behaves like mmdc."""

from __future__ import annotations

import os
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

from mmd.render import Renderer

# Accepts "<flag> <value>" pairs, so extra args must come in pairs too.
FAKE_RENDERER = """\
import pathlib
import sys
import time

opts = dict(zip(sys.argv[1::2], sys.argv[2::2]))
if "--log" in opts:
    with open(opts["--log"], "a") as f:
        f.write(" ".join(sys.argv[1:]) + "\\n")
if opts.get("--say"):
    sys.stderr.write(opts["--say"] + "\\n")
    sys.stderr.flush()
time.sleep(float(opts.get("--sleep", "0")))
code = int(opts.get("--exit", "0"))
if code:
    sys.stderr.write("Parse error on line 2\\n")
    sys.exit(code)
if opts.get("--write", "yes") == "yes":
    source = pathlib.Path(opts["-i"]).read_text()
    pathlib.Path(opts["-o"]).write_text(opts["-w"] + "x" + opts["-H"] + "\\n" + source)
"""


class FakeRenderer:
    """Builds Renderers around the fake script and reads back its call log."""

    def __init__(self, tmp_path: Path) -> None:
        self.script = tmp_path / "fake_mmdc.py"
        self.script.write_text(FAKE_RENDERER)
        self.log = tmp_path / "calls.log"

    def __call__(
        self,
        *,
        sleep: float = 0.0,
        say: str = "",
        exit_code: int = 0,
        write: bool = True,
        timeout: float = 10.0,
        atomic_write: bool = True,
    ) -> Renderer:
        args = (
            str(self.script),
            "--log",
            str(self.log),
            "--say",
            say,
            "--sleep",
            str(sleep),
            "--exit",
            str(exit_code),
            "--write",
            "yes" if write else "no",
        )
        return Renderer(
            executable=sys.executable,
            args=args,
            timeout=timeout,
            atomic_write=atomic_write,
        )

    @property
    def calls(self) -> list[str]:
        if not self.log.exists():
            return []
        return self.log.read_text().splitlines()


@pytest.fixture
def fake_renderer(tmp_path: Path) -> FakeRenderer:
    """Factory for renderers that run the fake mmdc script."""
    return FakeRenderer(tmp_path)


@pytest.fixture
def docs(tmp_path: Path) -> Path:
    """Empty file root."""
    root = tmp_path / "docs"
    root.mkdir()
    return root


@pytest.fixture
def set_mtime() -> Callable[[Path, float], None]:
    """Set a file's access and modification time."""

    def _set(path: Path, mtime: float) -> None:
        os.utime(path, (mtime, mtime))

    return _set
