"""Error taxonomy for the render pipeline.

Every error raised while resolving or rendering a diagram carries the HTTP
status the dispatcher answers with.
"""

from __future__ import annotations


class DiagramError(Exception):
    """Base class for failures that abort a diagram request."""

    status_code: int = 500

    def __init__(self, message: str, *, detail: str = "") -> None:
        super().__init__(message)
        self.detail = detail

    def body(self) -> str:
        """Response body: the message followed by any captured diagnostics."""
        if self.detail:
            return f"{self}\n\n{self.detail}\n"
        return f"{self}\n"


class SourceNotFoundError(DiagramError):
    """No source document exists for a requested diagram."""

    status_code = 404


class NoDiagramBlockError(DiagramError):
    """A composite document contains no diagram block."""

    status_code = 404


class SourceAccessError(DiagramError):
    """The source document exists but cannot be read."""

    status_code = 403


class SourceStatError(DiagramError):
    """Inspecting or reading the source document failed."""

    status_code = 502


class ArtifactStatError(DiagramError):
    """Inspecting the cached artifact failed."""

    status_code = 500


class ArtifactWriteError(DiagramError):
    """Writing a derived file (extracted source or artifact) failed."""

    status_code = 500


class RenderTimeoutError(DiagramError):
    """The renderer did not finish before the deadline."""

    status_code = 500


class RenderFailedError(DiagramError):
    """The renderer exited non-zero or could not be started."""

    status_code = 500
