"""Build a tar archive from streamed objects without buffering them."""

from __future__ import annotations

import logging
import tarfile
import time
from typing import BinaryIO

from obspec_stream.errors import TransportError
from obspec_stream.readers import DEFAULT_CHUNK_SIZE, RangeStreamReader

logger = logging.getLogger(__name__)

NUL = b"\0"


class TarStreamWriter:
    """
    Append streamed objects to a tar archive written to a binary file object.

    Each member's header is written from the reader's probed size before the
    body is streamed, so the archive can go to a non-seekable sink. The
    resulting file is a plain GNU tar readable by [tarfile][].

    Examples
    --------

    ```python
    with open("/tmp/out.tar", "wb") as f:
        async with TarStreamWriter(f) as tar:
            reader = await RangeStreamReader.open(store, "files/1.jpeg")
            await tar.add("1.jpeg", reader)
    ```
    """

    def __init__(self, fileobj: BinaryIO, *, buffer_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self._fileobj = fileobj
        self._buffer_size = buffer_size
        self._offset = 0
        self._closed = False

    def _write(self, data: bytes | memoryview) -> None:
        self._fileobj.write(data)
        self._offset += len(data)

    async def add(
        self,
        name: str,
        reader: RangeStreamReader,
        *,
        mtime: float | None = None,
        mode: int = 0o644,
    ) -> int:
        """
        Stream the rest of ``reader`` into the archive as member ``name``.

        Parameters
        ----------
        name
            Member path inside the archive.
        reader
            Source object. The member size is ``reader.size - reader.tell()``.
        mtime
            Modification time stored in the header, default now.
        mode
            Permission bits stored in the header.

        Returns
        -------
        int
            Number of body bytes written.

        Raises
        ------
        TransportError
            The reader ended before delivering the size announced in the header.
        """
        if self._closed:
            raise ValueError("I/O operation on closed archive")
        expected = reader.size - reader.tell()
        info = tarfile.TarInfo(name)
        info.size = expected
        info.mode = mode
        info.mtime = int(time.time() if mtime is None else mtime)
        self._write(info.tobuf(format=tarfile.GNU_FORMAT, encoding="utf-8"))

        buf = bytearray(self._buffer_size)
        view = memoryview(buf)
        written = 0
        while n := await reader.readinto(buf):
            self._write(view[:n])
            written += n
        if written != expected:
            raise TransportError(
                f"{name}: stream ended after {written} of {expected} bytes"
            )

        remainder = written % tarfile.BLOCKSIZE
        if remainder:
            self._write(NUL * (tarfile.BLOCKSIZE - remainder))
        logger.info("Added %s (%d bytes) to archive", name, written)
        return written

    def close(self) -> None:
        """Write the end-of-archive marker. The file object is left open."""
        if self._closed:
            return
        self._closed = True
        self._write(NUL * (2 * tarfile.BLOCKSIZE))
        # Pad to a full record like tarfile does
        remainder = self._offset % tarfile.RECORDSIZE
        if remainder:
            self._write(NUL * (tarfile.RECORDSIZE - remainder))

    async def __aenter__(self) -> TarStreamWriter:
        """Enter the async context manager."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Finish the archive unless the block raised."""
        if exc_type is None:
            self.close()


__all__ = ["TarStreamWriter"]
