"""Diagram URL naming.

A diagram URL has the form ``<name>[.<W>x<H>]<.png|.svg|.pdf>``. The
optional ``.<W>x<H>`` segment requests an explicit output size; without it
the configured default size is used.
"""

from __future__ import annotations

import re
from typing import NamedTuple

# Output kinds the renderer is asked to produce
DIAGRAM_EXTENSIONS = frozenset({".png", ".svg", ".pdf"})

_SIZE_RE = re.compile(r"([0-9]+)x([0-9]+)", re.ASCII)


class GraphURL(NamedTuple):
    """A request path split into its naming parts."""

    base: str
    width: str = ""
    height: str = ""
    ext: str = ""

    @property
    def has_size(self) -> bool:
        return bool(self.width)

    def size(self, default_width: int, default_height: int) -> tuple[str, str]:
        """Effective (width, height), falling back to the defaults."""
        if self.has_size:
            return self.width, self.height
        return str(default_width), str(default_height)

    def artifact_name(self) -> str:
        """Path of the rendered artifact, relative to the file root."""
        if self.has_size:
            return f"{self.base}.{self.width}x{self.height}{self.ext}"
        return f"{self.base}{self.ext}"


def _split_ext(path: str) -> tuple[str, str]:
    """Split off the final dot-suffix of the last path segment.

    Unlike posixpath.splitext, a leading dot counts: ".png" has extension ".png".
    """
    dot = path.rfind(".")
    if dot <= path.rfind("/"):
        return path, ""
    return path[:dot], path[dot:]


def decompose(path: str) -> GraphURL:
    """Split a request path into base, explicit size and extension.

    A trailing ``.<digits>x<digits>`` segment before the extension is taken
    as the output size. Anything else stays part of the base name.

    Args:
        path: Request path, e.g. "docs/flow.300x200.png"

    Returns:
        GraphURL with empty width/height when no size was given

    Example:
        >>> decompose("a/b.300x200.png")
        GraphURL(base='a/b', width='300', height='200', ext='.png')
        >>> decompose("a/b.xz.png")
        GraphURL(base='a/b.xz', width='', height='', ext='.png')
    """
    base, ext = _split_ext(path)
    _, size = _split_ext(base)
    if size:
        match = _SIZE_RE.fullmatch(size[1:])
        if match:
            return GraphURL(base[: -len(size)], match.group(1), match.group(2), ext)
    return GraphURL(base, "", "", ext)


def reconstruct(url: GraphURL) -> str:
    """Rebuild the default-size path for a decomposed URL."""
    return f"{url.base}{url.ext}"


def is_diagram_ext(ext: str) -> bool:
    return ext in DIAGRAM_EXTENSIONS
