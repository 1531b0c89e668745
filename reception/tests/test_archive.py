from __future__ import annotations

import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path

import pytest

from reception.core import storage
from reception.core.errors import NotFoundError
from reception.services.archive import (
    ArchiveUploadError,
    ArchiveWriteError,
    LotArchiver,
    archive_path,
    sanitize_lot_name,
)
from reception.services.pdf.lot_report import LotReportRenderer
from reception.tests.helpers import make_lot

FINISHED_AT = datetime(2024, 3, 15, 17, 5, 0)
GENERATED_AT = datetime(2024, 3, 15, 18, 0, 0)


class RecordingUploader:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls: list[tuple[int, bytes]] = []
        self.error = error

    async def __call__(self, lot_id: int, pdf_bytes: bytes) -> str:
        self.calls.append((lot_id, pdf_bytes))
        if self.error is not None:
            raise self.error
        return f"/media/pdfs/lot-{lot_id}.pdf"


class CountingRenderer(LotReportRenderer):
    def __init__(self) -> None:
        super().__init__("reportlab")
        self.calls = 0

    def render(self, lot, generated_at):
        self.calls += 1
        return super().render(lot, generated_at)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("My/Lot:Name*?", "MyLotName"),
        ("  Don  de la mairie ", "Don_de_la_mairie"),
        ('a<b>c|d"e\\f', "abcdef"),
        ("...", ""),
        (None, ""),
        ("x" * 150, "x" * 100),
    ],
)
def test_sanitize_lot_name(raw, expected) -> None:
    assert sanitize_lot_name(raw) == expected


def test_archive_path_uses_french_month(tmp_path: Path) -> None:
    named = make_lot(lot_name="My/Lot:Name*?", finished_at=FINISHED_AT)
    unnamed = make_lot(lot_name=None)

    assert archive_path(tmp_path, named) == tmp_path / "2024" / "Mars" / "MyLotName_2024-03-15.pdf"
    assert archive_path(tmp_path, unnamed) == tmp_path / "2024" / "Mars" / "Lot_7_2024-03-14.pdf"


def test_archive_writes_then_uploads(tmp_path: Path) -> None:
    upload = RecordingUploader()
    archiver = LotArchiver(LotReportRenderer("reportlab"), upload, tmp_path)
    lot = make_lot(finished_at=FINISHED_AT)

    result = asyncio.run(archiver.archive(lot, GENERATED_AT))

    assert result.archived_locally is True
    assert result.local_path == tmp_path / "2024" / "Mars" / "Lot_Mairie_2024-03-15.pdf"
    assert result.pdf_path == "/media/pdfs/lot-7.pdf"
    assert result.renderer == "reportlab"
    assert upload.calls == [(7, result.local_path.read_bytes())]


def test_archiving_twice_overwrites_same_file(tmp_path: Path) -> None:
    archiver = LotArchiver(LotReportRenderer("reportlab"), RecordingUploader(), tmp_path)
    lot = make_lot(finished_at=FINISHED_AT)

    first = asyncio.run(archiver.archive(lot, GENERATED_AT))
    content = first.local_path.read_bytes()
    second = asyncio.run(archiver.archive(lot, GENERATED_AT))

    assert second.local_path == first.local_path
    assert second.local_path.read_bytes() == content
    assert [path for path in tmp_path.rglob("*") if path.is_file()] == [first.local_path]


def test_write_failure_skips_upload(tmp_path: Path) -> None:
    root = tmp_path / "archive"
    root.write_text("not a directory", encoding="utf-8")
    upload = RecordingUploader()
    archiver = LotArchiver(LotReportRenderer("reportlab"), upload, root)

    with pytest.raises(ArchiveWriteError):
        asyncio.run(archiver.archive(make_lot(finished_at=FINISHED_AT), GENERATED_AT))

    assert upload.calls == []


def test_upload_failure_keeps_local_copy_for_retry(tmp_path: Path) -> None:
    failing = RecordingUploader(NotFoundError("Lot 7 introuvable"))
    renderer = CountingRenderer()
    lot = make_lot(finished_at=FINISHED_AT)

    with pytest.raises(ArchiveUploadError) as excinfo:
        asyncio.run(LotArchiver(renderer, failing, tmp_path).archive(lot, GENERATED_AT))

    local_path = excinfo.value.local_path
    assert excinfo.value.lot_id == 7
    assert local_path is not None and local_path.is_file()
    assert renderer.calls == 1

    upload = RecordingUploader()
    result = asyncio.run(LotArchiver(renderer, upload, tmp_path).retry_upload(7, local_path))

    assert renderer.calls == 1
    assert result.pdf_path == "/media/pdfs/lot-7.pdf"
    assert upload.calls == [(7, local_path.read_bytes())]


def test_retry_with_missing_file_is_a_write_error(tmp_path: Path) -> None:
    archiver = LotArchiver(LotReportRenderer("reportlab"), RecordingUploader(), tmp_path)

    with pytest.raises(ArchiveWriteError):
        asyncio.run(archiver.retry_upload(7, tmp_path / "absent.pdf"))


def test_without_archive_root_uploads_directly(tmp_path: Path) -> None:
    upload = RecordingUploader()
    archiver = LotArchiver(LotReportRenderer("reportlab"), upload)

    result = asyncio.run(archiver.archive(make_lot(), GENERATED_AT))

    assert archiver.available is False
    assert result.local_path is None
    assert result.archived_locally is False
    assert upload.calls[0][1].startswith(b"%PDF")
    assert list(tmp_path.iterdir()) == []


def test_concurrent_atomic_writes_use_distinct_temp_files(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    destination = tmp_path / "pdfs" / "lot-7.pdf"
    both_written = threading.Barrier(2, timeout=5)
    replace_file = storage._replace_file

    def _replace_together(tmp: Path, path: Path) -> None:
        both_written.wait()
        replace_file(tmp, path)

    monkeypatch.setattr(storage, "_replace_file", _replace_together)
    payloads = [b"%PDF-1.4 premier", b"%PDF-1.4 second"]

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = list(pool.map(lambda data: storage.write_bytes_atomic(destination, data), payloads))

    assert results == [destination, destination]
    assert destination.read_bytes() in payloads
    assert [path.name for path in destination.parent.iterdir()] == ["lot-7.pdf"]
