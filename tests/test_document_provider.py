import pytest
from docx import Document as DocxDocument

from memcompress.core.errors import DocumentLoadError
from memcompress.infrastructure.document_loaders import (
    CompositeLoader,
    FileSystemDocumentProvider,
)


@pytest.fixture
def corpus(tmp_path):
    (tmp_path / "domains" / "health").mkdir(parents=True)
    (tmp_path / "domains" / "health" / "sleep.md").write_text("# Sleep\n\nBed by 23:00.")
    (tmp_path / "notes.txt").write_text("plain text note")
    (tmp_path / "config.yaml").write_text("key: value")
    (tmp_path / "image.png").write_bytes(b"\x89PNG")
    (tmp_path / ".obsidian").mkdir()
    (tmp_path / ".obsidian" / "workspace.json").write_text("{}")
    (tmp_path / "broken.md").write_bytes(b"\xff\xfe\xfa")
    return tmp_path


def test_scan_reads_supported_files_with_relative_paths(corpus):
    scan = FileSystemDocumentProvider(corpus).scan()

    assert [d.path for d in scan.documents] == [
        "config.yaml",
        "domains/health/sleep.md",
        "notes.txt",
    ]
    assert scan.documents[1].content == "# Sleep\n\nBed by 23:00."


def test_scan_reports_unreadable_files(corpus):
    scan = FileSystemDocumentProvider(corpus).scan()

    assert [s.path for s in scan.skipped] == ["broken.md"]
    assert "broken.md" in scan.skipped[0].reason


def test_missing_root_is_an_empty_corpus(tmp_path):
    scan = FileSystemDocumentProvider(tmp_path / "nowhere").scan()
    assert scan.documents == [] and scan.skipped == []


def test_docx_headings_become_markdown(tmp_path):
    path = tmp_path / "runbook.docx"
    doc = DocxDocument()
    doc.add_heading("Restore", level=1)
    doc.add_paragraph("Stop the writer before restoring the snapshot.")
    doc.add_heading("Verify", level=2)
    doc.add_paragraph("Compare row counts with the source.")
    doc.save(path)

    text = CompositeLoader().load(path)

    assert text == (
        "# Restore\n\nStop the writer before restoring the snapshot.\n\n"
        "## Verify\n\nCompare row counts with the source."
    )


def test_unsupported_type_raises(tmp_path):
    path = tmp_path / "archive.zip"
    path.write_bytes(b"PK")
    loader = CompositeLoader()

    assert not loader.supports(path)
    with pytest.raises(DocumentLoadError):
        loader.load(path)
