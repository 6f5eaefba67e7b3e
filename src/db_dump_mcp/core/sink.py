"""Output sinks receiving the dump script."""

import logging
from pathlib import Path
from typing import Optional, Protocol, Union

import anyio

from db_dump_mcp.errors import SinkWriteError

logger = logging.getLogger(__name__)


class OutputSink(Protocol):
    """Append-only text destination. Closed by the engine."""

    async def write(self, text: str) -> None: ...

    async def close(self) -> None: ...


class SaveTarget(Protocol):
    """External save dialog: opens a sink for a suggested name."""

    async def open_for_write(self, suggested_name: str) -> Optional[OutputSink]:
        """Return a sink, or None if the user cancelled."""
        ...


class FileSink:
    """UTF-8 file sink; writes are serialized through one lock."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.bytes_written = 0
        self._file: Optional[anyio.AsyncFile] = None
        self._lock = anyio.Lock()

    async def open(self) -> "FileSink":
        try:
            self._file = await anyio.open_file(
                self.path, "w", encoding="utf-8", newline="\n"
            )
        except OSError as e:
            raise SinkWriteError(f"Cannot open {self.path}: {e}") from e
        return self

    async def write(self, text: str) -> None:
        async with self._lock:
            if self._file is None:
                raise SinkWriteError(f"{self.path} is not open for writing")
            try:
                await self._file.write(text)
            except OSError as e:
                raise SinkWriteError(f"Failed writing {self.path}: {e}") from e
            self.bytes_written += len(text.encode("utf-8"))

    async def close(self) -> None:
        async with self._lock:
            if self._file is None:
                return
            file, self._file = self._file, None
            try:
                await file.aclose()
            except OSError as e:
                raise SinkWriteError(f"Failed closing {self.path}: {e}") from e
            logger.debug(f"Closed {self.path} after {self.bytes_written} bytes")


class StringSink:
    """In-memory sink used for previews and tests."""

    def __init__(self):
        self._parts: list[str] = []
        self.closed = False

    async def write(self, text: str) -> None:
        if self.closed:
            raise SinkWriteError("sink is closed")
        self._parts.append(text)

    async def close(self) -> None:
        self.closed = True

    def getvalue(self) -> str:
        return "".join(self._parts)


class DirectorySaveTarget:
    """Saves every dump into one directory under its suggested name."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)
        self.last_path: Optional[Path] = None

    async def open_for_write(self, suggested_name: str) -> Optional[OutputSink]:
        try:
            await anyio.Path(self.directory).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SinkWriteError(f"Cannot create {self.directory}: {e}") from e
        path = self.directory / suggested_name
        self.last_path = path
        logger.info(f"Writing dump to {path}")
        return await FileSink(path).open()
