"""Background consumer of one child-process output stream."""

from __future__ import annotations

import logging
import threading
from typing import BinaryIO

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 4096


class StreamDrain:
    """Read a byte stream to EOF into a private buffer.

    ``run`` is meant to be executed on a worker thread. It never raises: EOF and
    read errors both end the drain and set the completion event. Readers must
    ``join`` before calling ``getvalue`` so the buffer is complete and stable.
    """

    def __init__(self, stream: BinaryIO, *, name: str = "stream") -> None:
        self._stream = stream
        self.name = name
        self._buffer = bytearray()
        self._done = threading.Event()
        self.error: Exception | None = None

    @property
    def finished(self) -> bool:
        return self._done.is_set()

    def run(self) -> None:
        try:
            read = getattr(self._stream, "read1", self._stream.read)
            while True:
                chunk = read(_CHUNK_SIZE)
                if not chunk:
                    break
                self._buffer.extend(chunk)
        except Exception as error:  # noqa: BLE001
            self.error = error
            logger.debug("Drain of %s stopped on read error: %s", self.name, error)
        finally:
            try:
                self._stream.close()
            except OSError as error:
                logger.debug("Closing %s stream failed: %s", self.name, error)
            self._done.set()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the drain to finish; return whether it did."""

        return self._done.wait(timeout)

    def getvalue(self) -> bytes:
        if not self._done.is_set():
            raise RuntimeError(f"Drain of {self.name} has not finished yet.")
        return bytes(self._buffer)

    def snapshot(self) -> bytes:
        """Return the bytes read so far, even if the drain is still running."""

        return bytes(self._buffer)
