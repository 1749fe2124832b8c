"""HTTP front end: render-on-demand in front of a static file server.

Requests for ``.png``, ``.svg`` or ``.pdf`` under the mount point are checked
against their diagram source and rendered first when the cached image is
missing or stale. The image itself, and every other file, is then served by
Starlette's StaticFiles (ranges, conditional requests, content types).

Usage:
    from mmd.config import load_config
    from mmd.server import create_app

    app = create_app(load_config())
"""

from __future__ import annotations

import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger
from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.responses import JSONResponse, PlainTextResponse
from starlette.routing import Mount, Route
from starlette.staticfiles import StaticFiles

import mmd
from mmd.config import SourceMode
from mmd.errors import (
    DiagramError,
    NoDiagramBlockError,
    SourceAccessError,
    SourceNotFoundError,
    SourceStatError,
)
from mmd.extract import extract_diagram
from mmd.logging import LogSpan
from mmd.render import Renderer, RenderLocks
from mmd.staleness import is_stale
from mmd.urls import GraphURL, decompose, is_diagram_ext

if TYPE_CHECKING:
    from starlette.requests import Request
    from starlette.types import Receive, Scope, Send

    from mmd.config import ServeConfig

MARKDOWN_SUFFIX = ".md"
MERMAID_SUFFIX = ".mmd"


@dataclass(frozen=True)
class DiagramSource:
    """A located source document."""

    path: Path
    mtime: float
    # Markdown document with an embedded block, as opposed to a bare definition
    composite: bool


def _route_path(scope: Scope) -> str:
    """Request path relative to the mount point."""
    path: str = scope["path"]
    root_path: str = scope.get("root_path", "")
    if root_path and path.startswith(root_path):
        return path[len(root_path) :]
    return path


class DiagramApp:
    """ASGI app rendering stale diagrams before handing off to StaticFiles."""

    def __init__(
        self,
        config: ServeConfig,
        renderer: Renderer | None = None,
        locks: RenderLocks | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            config: Server configuration
            renderer: Render invoker (defaults to one built from config)
            locks: Per-artifact render locks (defaults to a private set)
        """
        self.config = config
        self.root = config.resolve_file_root()
        self.renderer = renderer or Renderer.from_config(config)
        self.locks = locks if locks is not None else RenderLocks()
        self.static = StaticFiles(directory=self.root)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        assert scope["type"] == "http"

        url = decompose(_route_path(scope).lstrip("/"))
        if is_diagram_ext(url.ext) and scope["method"] in ("GET", "HEAD"):
            try:
                await run_in_threadpool(self.prepare, url)
            except DiagramError as e:
                response = PlainTextResponse(e.body(), status_code=e.status_code)
                await response(scope, receive, send)
                return

        await self.static(scope, receive, send)

    def prepare(self, url: GraphURL) -> Path | None:
        """Make sure the artifact for ``url`` is present and fresh.

        Blocking; runs in a worker thread.

        Args:
            url: Decomposed request path

        Returns:
            The artifact path, or None when the request is left to the
            static responder untouched (artifact without a source)

        Raises:
            DiagramError: If the source is missing or unreadable, or the
                render failed
        """
        artifact_name = url.artifact_name()
        with LogSpan(span="dispatch.prepare", artifact=artifact_name) as s:
            artifact = self._resolve(artifact_name)
            source = self.find_source(url.base)

            if source is None:
                if artifact.is_file():
                    s.add(result="static")
                    return None
                s.add(result="not_found")
                raise SourceNotFoundError(f"No diagram source for {url.base}")

            policy = self.config.staleness
            if not is_stale(source.mtime, artifact, policy):
                s.add(result="fresh")
                return artifact

            with self.locks.hold(artifact):
                # Another request may have rendered it while this one waited
                source = self.find_source(url.base)
                if source is None:
                    raise SourceNotFoundError(f"No diagram source for {url.base}")
                if not is_stale(source.mtime, artifact, policy):
                    s.add(result="fresh")
                    return artifact

                definition = self.definition_file(source)
                width, height = url.size(self.config.width, self.config.height)
                self.renderer.render(artifact, definition, width, height)

            s.add(result="rendered", source=source.path.name)
            return artifact

    def find_source(self, base: str) -> DiagramSource | None:
        """Locate the source document for a logical name.

        Args:
            base: Logical name relative to the file root

        Returns:
            The source, or None if no candidate exists

        Raises:
            SourceAccessError: If a candidate exists but is unreadable
            SourceStatError: If a candidate cannot be inspected
        """
        markdown = (base + MARKDOWN_SUFFIX, True)
        mermaid = (base + MERMAID_SUFFIX, False)
        candidates = {
            SourceMode.AUTO: [markdown, mermaid],
            SourceMode.MARKDOWN: [markdown],
            SourceMode.MERMAID: [mermaid],
        }[self.config.source_mode]

        for name, composite in candidates:
            path = self._resolve(name)
            mtime = self._source_mtime(path)
            if mtime is not None:
                return DiagramSource(path, mtime, composite)
        return None

    def definition_file(self, source: DiagramSource) -> Path:
        """Path of the file to hand the renderer for ``source``.

        A composite document has its diagram block extracted into the
        sibling ``.mmd`` file first.
        """
        if not source.composite:
            return source.path

        dest = source.path.with_suffix(MERMAID_SUFFIX)
        try:
            return extract_diagram(dest, source.path, self.config.diagram_tag)
        except NoDiagramBlockError as e:
            if not self.config.extract_fallback:
                raise
            logger.warning(f"{e}; rendering the whole document")
            return source.path

    def _resolve(self, name: str) -> Path:
        path = (self.root / name).resolve()
        if not path.is_relative_to(self.root):
            raise SourceNotFoundError(f"Path outside file root: {name}")
        return path

    @staticmethod
    def _source_mtime(path: Path) -> float | None:
        try:
            st = os.stat(path)
        except (FileNotFoundError, NotADirectoryError):
            return None
        except PermissionError as e:
            raise SourceAccessError(f"Cannot access {path.name}: {e.strerror}") from e
        except OSError as e:
            raise SourceStatError(f"Cannot stat {path.name}: {e}") from e

        if not stat.S_ISREG(st.st_mode):
            return None
        if not os.access(path, os.R_OK):
            raise SourceAccessError(f"Cannot read {path.name}: Permission denied")
        return st.st_mtime


def create_app(config: ServeConfig, renderer: Renderer | None = None) -> Starlette:
    """Build the ASGI application.

    Diagrams are served under ``config.http_root``; ``/healthz`` reports
    liveness outside the mount.

    Args:
        config: Server configuration
        renderer: Render invoker override (tests inject fakes here)

    Returns:
        Starlette application
    """
    diagrams = DiagramApp(config, renderer=renderer)

    async def healthz(_request: Request) -> JSONResponse:
        return JSONResponse(
            {
                "status": "ok",
                "version": mmd.__version__,
                "file_root": str(diagrams.root),
            }
        )

    routes = [
        Route("/healthz", healthz, methods=["GET"]),
        Mount(config.http_root.rstrip("/"), app=diagrams, name="diagrams"),
    ]
    return Starlette(routes=routes)
