"""Task references — the resource a task was declared in."""

import io
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Union

from mechanic.fingerprint.md5 import md5_hex


class TaskReference:
    """
    A task-declared resource. Subclasses provide `path`, `open_stream` and
    `last_modified`; the rest is derived.
    """

    @property
    def path(self) -> str:
        raise NotImplementedError

    @property
    def name(self) -> str:
        return self.path.rstrip("/").rsplit("/", 1)[-1]

    def last_modified(self) -> int:
        """Last modification time in epoch milliseconds. Raises OSError."""
        raise NotImplementedError

    def open_stream(self):
        """Context manager yielding a binary stream, closed when the block exits."""
        raise NotImplementedError

    def compute_md5(self) -> str:
        with self.open_stream() as stream:
            return md5_hex(stream)

    def read_bytes(self) -> bytes:
        with self.open_stream() as stream:
            return stream.read()

    def as_file(self) -> Optional[Path]:
        """Local file backing this reference, if any."""
        return None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.path!r})"


class FileTaskReference(TaskReference):
    """Reference to a task file on the local filesystem."""

    def __init__(self, file: Union[str, Path]):
        self.file = Path(file)

    @property
    def path(self) -> str:
        return str(self.file)

    @property
    def name(self) -> str:
        return self.file.name

    def last_modified(self) -> int:
        return self.file.stat().st_mtime_ns // 1_000_000

    @contextmanager
    def open_stream(self) -> Iterator[BinaryIO]:
        with open(self.file, "rb") as stream:
            yield stream

    def as_file(self) -> Optional[Path]:
        return self.file


class BytesTaskReference(TaskReference):
    """In-memory resource, for tasks whose content did not come from disk."""

    def __init__(self, path: str, content: bytes, last_modified: int = 0):
        self._path = path
        self.content = content
        self.modified = last_modified

    @property
    def path(self) -> str:
        return self._path

    def last_modified(self) -> int:
        return self.modified

    @contextmanager
    def open_stream(self) -> Iterator[BinaryIO]:
        with io.BytesIO(self.content) as stream:
            yield stream
