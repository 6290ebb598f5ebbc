"""Byte copying between provider streams and local files."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import BinaryIO

# Copy buffer size in bytes
CHUNK_SIZE = 64 * 1024


def write_stream_to_file(stream: BinaryIO, file: Path) -> None:
    """Copy everything readable from ``stream`` into ``file``.

    The file is created or truncated; missing parent directories are
    created. The stream is left open for the caller to close.
    """
    file = Path(file)
    file.parent.mkdir(parents=True, exist_ok=True)
    with file.open("wb") as out:
        shutil.copyfileobj(stream, out, CHUNK_SIZE)


def write_file_to_stream(file: Path, stream: BinaryIO) -> None:
    """Copy the full contents of ``file`` into ``stream``."""
    with Path(file).open("rb") as src:
        shutil.copyfileobj(src, stream, CHUNK_SIZE)
