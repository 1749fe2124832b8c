"""External renderer invocation.

Runs the configured renderer (mermaid-cli's ``mmdc`` by default) as

    <executable> [extra args...] -w <W> -H <H> -i <source> -o <dest>

with a hard deadline. The renderer runs in its own process group so that a
timeout kills it together with any helper processes it started (mmdc drives
a headless browser).
"""

from __future__ import annotations

import contextlib
import os
import signal
import subprocess
import threading
import uuid
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from mmd.errors import ArtifactWriteError, RenderFailedError, RenderTimeoutError
from mmd.logging import LogSpan

if TYPE_CHECKING:
    from mmd.config import ServeConfig

# Longest stderr excerpt kept on a render error
MAX_DIAGNOSTIC_CHARS = 8000


def _kill_process_tree(process: subprocess.Popen[str]) -> None:
    """Kill ``process`` and everything in its process group."""
    if hasattr(os, "killpg"):
        with contextlib.suppress(ProcessLookupError, PermissionError):
            os.killpg(process.pid, signal.SIGKILL)
    with contextlib.suppress(ProcessLookupError):
        process.kill()


def _tail(text: str) -> str:
    text = text.strip()
    if len(text) > MAX_DIAGNOSTIC_CHARS:
        return "..." + text[-MAX_DIAGNOSTIC_CHARS:]
    return text


@dataclass(frozen=True)
class Renderer:
    """Invokes the external renderer with a deadline."""

    executable: str = "mmdc"
    args: tuple[str, ...] = ()
    timeout: float = 10.0
    atomic_write: bool = True

    @classmethod
    def from_config(cls, config: ServeConfig) -> Renderer:
        return cls(
            executable=config.executable,
            args=tuple(config.exec_args),
            timeout=config.timeout,
            atomic_write=config.atomic_write,
        )

    def command(self, dest: Path, source: Path, width: str, height: str) -> list[str]:
        """Full argument vector for one render."""
        return [
            self.executable,
            *self.args,
            "-w",
            width,
            "-H",
            height,
            "-i",
            str(source),
            "-o",
            str(dest),
        ]

    def render(self, dest: Path, source: Path, width: str, height: str) -> None:
        """Render ``source`` into ``dest`` at the given pixel size.

        With atomic_write the renderer writes a hidden sibling of ``dest``
        that keeps its extension (the renderer picks the output format from
        it), and the finished file is renamed over ``dest``.

        Args:
            dest: Artifact path to create or overwrite
            source: Diagram definition file
            width: Width in pixels, as a decimal string
            height: Height in pixels, as a decimal string

        Raises:
            RenderTimeoutError: If the renderer outlives the deadline
            RenderFailedError: If it cannot start, exits non-zero or writes nothing
            ArtifactWriteError: If the finished file cannot be moved into place
        """
        target = dest
        if self.atomic_write:
            target = dest.with_name(f".{dest.stem}.{uuid.uuid4().hex[:8]}{dest.suffix}")

        with LogSpan(
            span="render.exec",
            executable=self.executable,
            source=str(source),
            dest=str(dest),
            width=width,
            height=height,
        ) as s:
            try:
                self._run(self.command(target, source, width, height), s)
                if target != dest:
                    if not target.exists():
                        raise RenderFailedError(
                            f"Renderer produced no output for {dest.name}"
                        )
                    try:
                        os.replace(target, dest)
                    except OSError as e:
                        raise ArtifactWriteError(f"Cannot write {dest.name}: {e}") from e
            finally:
                if target != dest:
                    with contextlib.suppress(OSError):
                        target.unlink(missing_ok=True)

    def _run(self, argv: list[str], span: LogSpan) -> None:
        try:
            process = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                start_new_session=True,
            )
        except OSError as e:
            span.add(error="launch_failed")
            raise RenderFailedError(
                f"Cannot start renderer {self.executable}: {e.strerror or e}"
            ) from e

        with process:
            try:
                stdout, stderr = process.communicate(timeout=self.timeout)
            except subprocess.TimeoutExpired:
                _kill_process_tree(process)
                _, stderr = process.communicate()
                span.add(error="timeout")
                raise RenderTimeoutError(
                    f"Renderer timed out after {self.timeout:g} seconds",
                    detail=_tail(stderr or ""),
                ) from None

        if stdout.strip():
            logger.debug(f"{self.executable} stdout: {stdout.strip()}")

        span.add(returncode=process.returncode)
        if process.returncode != 0:
            span.add(error=f"exit_{process.returncode}")
            raise RenderFailedError(
                f"Renderer exited with status {process.returncode}",
                detail=_tail(stderr),
            )


class RenderLocks:
    """One lock per artifact path, so a given artifact renders once at a time.

    Entries are reference counted and dropped once no thread holds or waits
    for them.
    """

    def __init__(self) -> None:
        self._locks: dict[Path, tuple[threading.Lock, int]] = {}
        self._guard = threading.Lock()

    @contextlib.contextmanager
    def hold(self, path: Path) -> Iterator[None]:
        """Hold the lock for ``path`` for the duration of the block."""
        with self._guard:
            lock, users = self._locks.get(path, (threading.Lock(), 0))
            self._locks[path] = (lock, users + 1)

        try:
            with lock:
                yield
        finally:
            with self._guard:
                lock, users = self._locks[path]
                if users <= 1:
                    del self._locks[path]
                else:
                    self._locks[path] = (lock, users - 1)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
