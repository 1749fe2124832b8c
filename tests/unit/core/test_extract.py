"""Unit tests for diagram block extraction.

Uses tmp_path fixture for isolated documents.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from mmd.errors import ArtifactWriteError, NoDiagramBlockError, SourceStatError
from mmd.extract import extract_diagram, find_diagram_block

if TYPE_CHECKING:
    from pathlib import Path

DOCUMENT = """\
# Login flow

Some prose.

```python
print("not a diagram")
```

```mermaid
sequenceDiagram
    C->>S: Login
    S-->>C: Token
```

```mermaid
graph TD
    second --> block
```
"""


@pytest.mark.unit
@pytest.mark.core
class TestFindDiagramBlock:
    """Test find_diagram_block function."""

    def test_first_tagged_block(self):
        lines = DOCUMENT.splitlines(keepends=True)

        assert find_diagram_block(lines) == [
            "sequenceDiagram\n",
            "    C->>S: Login\n",
            "    S-->>C: Token\n",
        ]

    def test_tag_case_and_whitespace_insensitive(self):
        lines = ["  ```  MerMaid  \n", "graph LR\n", "```\n"]

        assert find_diagram_block(lines) == ["graph LR\n"]

    def test_other_tags_ignored(self):
        lines = ["```mermaidx\n", "a\n", "```\n", "```js\n", "b\n", "```\n"]

        assert find_diagram_block(lines) is None

    def test_nested_fence_with_info_string_is_content(self):
        lines = ["````mermaid\n", "```js\n", "x\n", "```\n", "````\n"]

        assert find_diagram_block(lines) == ["```js\n", "x\n", "```\n"]

    def test_tilde_fence(self):
        lines = ["~~~mermaid\n", "graph TD\n", "~~~\n"]

        assert find_diagram_block(lines) == ["graph TD\n"]

    def test_unclosed_block_runs_to_end(self):
        lines = ["```mermaid\n", "graph TD\n", "  a --> b\n"]

        assert find_diagram_block(lines) == ["graph TD\n", "  a --> b\n"]

    def test_custom_tag(self):
        lines = ["```plantuml\n", "@startuml\n", "```\n"]

        assert find_diagram_block(lines, tag="plantuml") == ["@startuml\n"]


@pytest.mark.unit
@pytest.mark.core
class TestExtractDiagram:
    """Test extract_diagram function."""

    def test_writes_block_verbatim(self, tmp_path: Path):
        doc = tmp_path / "flow.md"
        doc.write_text(DOCUMENT)
        dest = tmp_path / "flow.mmd"

        result = extract_diagram(dest, doc)

        assert result == dest
        assert dest.read_text() == "sequenceDiagram\n    C->>S: Login\n    S-->>C: Token\n"

    def test_overwrites_destination(self, tmp_path: Path):
        doc = tmp_path / "flow.md"
        doc.write_text("```mermaid\ngraph LR\n```\n")
        dest = tmp_path / "flow.mmd"
        dest.write_text("stale content that is much longer than the new one\n")

        extract_diagram(dest, doc)

        assert dest.read_text() == "graph LR\n"

    def test_open_reader_keeps_whole_old_definition(self, tmp_path: Path):
        doc = tmp_path / "flow.md"
        doc.write_text("```mermaid\ngraph LR\n```\n")
        dest = tmp_path / "flow.mmd"
        dest.write_text("graph TD\n  old --> definition\n")

        with dest.open() as reader:
            extract_diagram(dest, doc)
            assert reader.read() == "graph TD\n  old --> definition\n"

        assert dest.read_text() == "graph LR\n"
        assert sorted(p.name for p in tmp_path.iterdir()) == ["flow.md", "flow.mmd"]

    def test_crlf_preserved(self, tmp_path: Path):
        doc = tmp_path / "flow.md"
        doc.write_bytes(b"```mermaid\r\ngraph LR\r\n```\r\n")
        dest = tmp_path / "flow.mmd"

        extract_diagram(dest, doc)

        assert dest.read_bytes() == b"graph LR\r\n"

    def test_no_block_raises(self, tmp_path: Path):
        doc = tmp_path / "notes.md"
        doc.write_text("# Notes\n\nNo diagrams here.\n")
        dest = tmp_path / "notes.mmd"

        with pytest.raises(NoDiagramBlockError) as exc_info:
            extract_diagram(dest, doc)

        assert exc_info.value.status_code == 404
        assert not dest.exists()

    def test_empty_block_raises(self, tmp_path: Path):
        doc = tmp_path / "empty.md"
        doc.write_text("```mermaid\n   \n```\n")

        with pytest.raises(NoDiagramBlockError):
            extract_diagram(tmp_path / "empty.mmd", doc)

    def test_missing_document_raises(self, tmp_path: Path):
        with pytest.raises(SourceStatError):
            extract_diagram(tmp_path / "x.mmd", tmp_path / "missing.md")

    def test_unwritable_destination_raises(self, tmp_path: Path):
        doc = tmp_path / "flow.md"
        doc.write_text("```mermaid\ngraph LR\n```\n")
        dest = tmp_path / "no-such-dir" / "flow.mmd"

        with pytest.raises(ArtifactWriteError):
            extract_diagram(dest, doc)

    @pytest.mark.skipif(
        not hasattr(os, "geteuid") or os.geteuid() == 0,
        reason="permission bits are not enforced for root",
    )
    def test_unreadable_document_is_access_error(self, tmp_path: Path):
        from mmd.errors import SourceAccessError

        doc = tmp_path / "secret.md"
        doc.write_text("```mermaid\ngraph LR\n```\n")
        doc.chmod(0)
        try:
            with pytest.raises(SourceAccessError) as exc_info:
                extract_diagram(tmp_path / "secret.mmd", doc)
        finally:
            doc.chmod(0o644)

        assert exc_info.value.status_code == 403
