"""
Writer decorator stack: file -> [encrypt] -> [compress] -> lines

Layers are pushed inner to outer when the sink opens and closed outer to
inner, so each layer flushes its trailer into the one beneath it before that
one is closed.
"""

from pathlib import Path
from typing import BinaryIO, List, Optional, Tuple
import bz2
import gzip
import io
import logging
import os

from core.exceptions import SinkError
from migration.sinks.encryption import EncryptionContext

logger = logging.getLogger(__name__)


class LayerStack:
    """Owns every stream of one artifact until ``close()`` or ``abort()``."""

    def __init__(self):
        self._layers: List[Tuple[str, BinaryIO]] = []

    def push(self, name: str, stream: BinaryIO) -> BinaryIO:
        self._layers.append((name, stream))
        return stream

    @property
    def top(self) -> BinaryIO:
        if not self._layers:
            raise SinkError("Output stream is not open")
        return self._layers[-1][1]

    @property
    def names(self) -> List[str]:
        return [name for name, _ in self._layers]

    def __len__(self) -> int:
        return len(self._layers)

    def close(self) -> None:
        """
        Close every layer, outermost first.

        All layers are closed even when one fails; the first failure is
        raised afterwards.
        """
        failure: Optional[Tuple[str, Exception]] = None
        while self._layers:
            name, stream = self._layers.pop()
            try:
                if isinstance(stream, io.BufferedWriter):
                    stream.flush()
                    os.fsync(stream.fileno())
                stream.close()
            except (OSError, ValueError, SinkError) as e:
                logger.error(f"Failed to close {name} layer: {e}")
                if failure is None:
                    failure = (name, e)

        if failure is not None:
            name, error = failure
            if isinstance(error, SinkError):
                raise error
            raise SinkError(
                f"Failed to close {name} layer",
                context={"layer": name},
                original_exception=error
            )

    def abort(self) -> None:
        """Release every layer without sealing; errors are logged only."""
        while self._layers:
            name, stream = self._layers.pop()
            try:
                discard = getattr(stream, "discard", None)
                if discard is not None:
                    discard()
                else:
                    stream.close()
            except (OSError, ValueError, SinkError) as e:
                logger.warning(f"Ignoring error while releasing {name} layer: {e}")


def open_layers(
    path: Path,
    compression: str = "none",
    encryption: Optional[EncryptionContext] = None,
) -> LayerStack:
    """Open ``path`` for writing and wrap it in the configured layers."""
    stack = LayerStack()
    try:
        stream = stack.push("file", open(path, "xb"))
        if encryption is not None:
            stream = stack.push("encrypt", encryption.open_writer(stream))
        if compression == "gzip":
            stack.push("gzip", gzip.GzipFile(filename="", mode="wb", fileobj=stream, mtime=0))
        elif compression == "bz2":
            stack.push("bz2", bz2.BZ2File(stream, mode="wb"))
        elif compression != "none":
            raise SinkError(f"Unsupported compression: {compression}")
    except OSError as e:
        stack.abort()
        raise SinkError(
            "Failed to open output artifact",
            context={"path": str(path)},
            original_exception=e
        )
    except SinkError:
        stack.abort()
        raise
    return stack
