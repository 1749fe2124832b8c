"""Diagram extraction from Markdown documents.

A composite document embeds its diagram in a fenced code block:

    # Request flow

    ```mermaid
    sequenceDiagram
        C->>S: Request
    ```

The first such block is copied into a standalone definition file that the
renderer can consume.
"""

from __future__ import annotations

import contextlib
import os
import re
import uuid
from typing import TYPE_CHECKING

from mmd.errors import (
    ArtifactWriteError,
    NoDiagramBlockError,
    SourceAccessError,
    SourceStatError,
)
from mmd.logging import LogSpan

if TYPE_CHECKING:
    from pathlib import Path

_FENCE_RE = re.compile(r"^[ \t]*(?P<fence>`{3,}|~{3,})[ \t]*(?P<info>[^\r\n]*?)[ \t]*\r?\n?$")


def find_diagram_block(lines: list[str], tag: str = "mermaid") -> list[str] | None:
    """Find the lines of the first fenced block tagged with ``tag``.

    The tag is matched case-insensitively. A block closes at the next fence
    made of the same character that is at least as long as the opening one,
    or at the end of the document.

    Args:
        lines: Document lines, line endings kept
        tag: Fence info string identifying a diagram block

    Returns:
        Lines strictly between the fences, or None when no block is tagged
    """
    wanted = tag.strip().lower()
    block: list[str] | None = None
    opening = ""

    for line in lines:
        match = _FENCE_RE.match(line)
        if block is None:
            if match and match.group("info").lower() == wanted:
                opening = match.group("fence")
                block = []
            continue
        if (
            match
            and not match.group("info")
            and match.group("fence")[0] == opening[0]
            and len(match.group("fence")) >= len(opening)
        ):
            return block
        block.append(line)

    return block


def extract_diagram(dest: Path, document: Path, tag: str = "mermaid") -> Path:
    """Write the diagram block of ``document`` to ``dest``.

    Args:
        dest: Definition file to create or overwrite
        document: Markdown document holding the diagram
        tag: Fence info string identifying a diagram block

    Returns:
        The destination path

    Raises:
        NoDiagramBlockError: If the document has no non-empty diagram block
        SourceAccessError: If the document cannot be read for lack of permission
        SourceStatError: If the document cannot be read for another reason
        ArtifactWriteError: If the destination cannot be written
    """
    with LogSpan(span="extract.diagram", document=str(document), dest=str(dest)) as s:
        try:
            with document.open(encoding="utf-8", newline="") as f:
                lines = f.readlines()
        except PermissionError as e:
            raise SourceAccessError(f"Cannot read {document.name}: {e.strerror}") from e
        except (OSError, UnicodeDecodeError) as e:
            raise SourceStatError(f"Cannot read {document.name}: {e}") from e

        block = find_diagram_block(lines, tag)
        if not block or not "".join(block).strip():
            s.add(error="no_block")
            raise NoDiagramBlockError(f"No {tag} code block found in {document.name}")

        # Renders of other artifacts may be reading dest; swap it in whole
        tmp = dest.with_name(f".{dest.stem}.{uuid.uuid4().hex[:8]}{dest.suffix}")
        try:
            with tmp.open("w", encoding="utf-8", newline="") as f:
                f.writelines(block)
            os.replace(tmp, dest)
        except OSError as e:
            raise ArtifactWriteError(f"Cannot write {dest.name}: {e}") from e
        finally:
            with contextlib.suppress(OSError):
                tmp.unlink(missing_ok=True)

        s.add(lines=len(block))
        return dest
