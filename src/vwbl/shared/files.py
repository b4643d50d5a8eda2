"""Helpers for plain content handed to the registration flow."""

import base64
import mimetypes
from collections.abc import AsyncIterator
from dataclasses import dataclass
from pathlib import Path

from vwbl.shared.concurrency import to_thread_limited
from vwbl.shared.crypto import STREAM_SEGMENT_SIZE


@dataclass(frozen=True)
class PlainFile:
    """In-memory file, the counterpart of a browser `File`."""

    name: str
    content: bytes
    mime_type: str = ""


FileOrPath = PlainFile | Path | str


def file_name_of(file: FileOrPath) -> str:
    if isinstance(file, PlainFile):
        return file.name
    return Path(file).name


def get_mime_type(file: FileOrPath) -> str:
    if isinstance(file, PlainFile) and file.mime_type:
        return file.mime_type
    mime_type, _ = mimetypes.guess_type(file_name_of(file))
    return mime_type or ""


async def read_file(file: FileOrPath) -> bytes:
    """Load the whole file into memory."""
    if isinstance(file, PlainFile):
        return file.content
    return await to_thread_limited(Path(file).read_bytes)


async def to_base64(file: FileOrPath) -> str:
    return base64.b64encode(await read_file(file)).decode("ascii")


async def iter_file(file: FileOrPath, chunk_size: int = STREAM_SEGMENT_SIZE) -> AsyncIterator[bytes]:
    """Read a file chunk by chunk without holding it in memory."""
    if isinstance(file, PlainFile):
        for start in range(0, len(file.content), chunk_size):
            yield file.content[start : start + chunk_size]
        return

    handle = await to_thread_limited(Path(file).open, "rb")
    try:
        while True:
            chunk = await to_thread_limited(handle.read, chunk_size)
            if not chunk:
                break
            yield chunk
    finally:
        handle.close()
