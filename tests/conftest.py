from __future__ import annotations

import logging
from pathlib import Path

import pytest

from photo_date_fixer import MetadataWriteError


class FakeCodec:
    """In-memory stand-in for exiftool keyed by file name."""

    def __init__(self, tags: dict[str, str] | None = None, fail_on: set[str] | None = None) -> None:
        self.tags = dict(tags or {})
        self.fail_on = set(fail_on or ())
        self.reads: list[Path] = []
        self.writes: list[tuple[Path, str]] = []

    def read_capture_date(self, path: Path) -> str | None:
        self.reads.append(path)
        return self.tags.get(path.name)

    def write_capture_date(self, path: Path, value: str) -> None:
        if path.name in self.fail_on:
            raise MetadataWriteError(path, "Not a valid JPG")
        self.writes.append((path, value))
        self.tags[path.name] = value


@pytest.fixture
def fake_codec() -> FakeCodec:
    return FakeCodec()


@pytest.fixture
def photo_tree(tmp_path: Path) -> Path:
    """A small library with dated photos at two levels and some noise."""

    (tmp_path / "07-04-23_1530.jpg").write_bytes(b"")
    (tmp_path / "notes.txt").write_text("hello")
    (tmp_path / "IMG_0001.jpg").write_bytes(b"")
    album = tmp_path / "album"
    album.mkdir()
    (album / "12-31-99_2359.JPEG").write_bytes(b"")
    nested = album / "nested"
    nested.mkdir()
    (nested / "01-02-03_0405.jpg").write_bytes(b"")
    return tmp_path


@pytest.fixture(autouse=True)
def reset_logger():
    logger = logging.getLogger("photo_date_fixer")
    yield
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
