"""
Framed output sink: header, one line per record, footer with the line count
"""

from pathlib import Path
from typing import Iterable, Mapping, Any, Optional, Sequence
import logging
import os
import uuid

from core.exceptions import ConfigurationError, RecordEncodingError, SinkError
from migration.sinks.encryption import EncryptionContext
from migration.sinks.formatter import LineFormatter
from migration.sinks.layers import LayerStack, open_layers
from schemas.job import SinkConfig

logger = logging.getLogger(__name__)


class FramedSink:
    """
    Write one artifact in a single forward pass.

    Lifecycle: ``open()`` → ``write_lines()``* → ``finalize()``; ``abort()``
    on any failure. The artifact is built under a hidden temporary name next
    to the destination and only renamed into place once the footer is
    written and every layer has been closed, so a failed or cancelled run
    never leaves anything at the destination path.

    ``lines_written`` is owned by the sink: it counts lines accepted by the
    layered stream and is what the footer reports.
    """

    def __init__(self, config: SinkConfig, encryption: Optional[EncryptionContext] = None):
        if config.encryption_enabled and encryption is None:
            raise ConfigurationError(
                "Encryption is enabled but no encryption context was provided",
                context={"destination": config.destination}
            )
        self.config = config
        self.encryption = encryption if config.encryption_enabled else None
        self.formatter = LineFormatter(config)
        self.destination = Path(config.destination)
        self.lines_written = 0
        self.state = "new"
        self._layers: Optional[LayerStack] = None
        self._temp_path: Optional[Path] = None
        self._artifact_path: Optional[Path] = None

    @property
    def artifact_path(self) -> Optional[Path]:
        """Final artifact location, set only after a successful finalize."""
        return self._artifact_path

    @property
    def temp_path(self) -> Optional[Path]:
        return self._temp_path

    def _context(self) -> dict:
        return {"destination": str(self.destination), "lines_written": self.lines_written}

    def _require(self, state: str, operation: str) -> None:
        if self.state != state:
            raise SinkError(
                f"Cannot {operation} a sink in state {self.state}",
                context=self._context()
            )

    def open(self) -> None:
        self._require("new", "open")
        try:
            self.destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SinkError(
                "Cannot create destination directory",
                context=self._context(),
                original_exception=e
            )

        self._temp_path = self.destination.parent / f".{self.destination.name}.{uuid.uuid4().hex}.part"
        self._layers = open_layers(
            self._temp_path,
            compression=self.config.compression,
            encryption=self.encryption,
        )
        self.state = "open"
        try:
            self._write(self._encode(self.formatter.frame_line(self.config.header)))
        except SinkError:
            self.abort()
            raise

        logger.info(
            f"Opened artifact {self.destination} "
            f"(layers={'/'.join(self._layers.names)}, temp={self._temp_path.name})"
        )

    def _encode(self, text: str) -> bytes:
        try:
            return text.encode(self.config.encoding)
        except (UnicodeEncodeError, LookupError) as e:
            raise SinkError(
                f"Cannot encode output line as {self.config.encoding}",
                context=self._context(),
                original_exception=e
            )

    def _write(self, data: bytes) -> None:
        try:
            self._layers.top.write(data)
        except (OSError, ValueError) as e:
            self.state = "failed"
            raise SinkError(
                "Write to output artifact failed",
                context=self._context(),
                original_exception=e
            )
        except SinkError:
            self.state = "failed"
            raise

    def serialize(self, record: Mapping[str, Any]) -> bytes:
        """
        Format and encode one record as an output line.

        Raises RecordEncodingError when the record cannot be represented in
        the configured encoding; the stream is left untouched.
        """
        try:
            return self.formatter.format(record).encode(self.config.encoding)
        except (UnicodeEncodeError, ValueError, TypeError) as e:
            raise RecordEncodingError(
                f"Cannot serialize record as {self.config.encoding}",
                context={"encoding": self.config.encoding, "reason": str(e)},
                original_exception=e
            )

    def write_chunk(self, records: Iterable[Mapping[str, Any]]) -> int:
        """Serialize and write one chunk; nothing is written if any record fails."""
        self._require("open", "write to")
        return self.write_lines([self.serialize(record) for record in records])

    def write_lines(self, lines: Sequence[bytes]) -> int:
        """
        Write lines already produced by ``serialize()``.

        Returns the number of lines written; ``lines_written`` only advances
        for lines the stream accepted.
        """
        self._require("open", "write to")
        written = 0
        for line in lines:
            self._write(line)
            self.lines_written += 1
            written += 1
        return written

    def finalize(self) -> Path:
        """Write the footer, close every layer and publish the artifact."""
        self._require("open", "finalize")
        try:
            self._write(self._encode(
                self.formatter.footer(self.config.footer_label, self.lines_written)
            ))
            self._layers.close()
            os.replace(self._temp_path, self.destination)
        except OSError as e:
            self.abort()
            raise SinkError(
                "Failed to publish output artifact",
                context=self._context(),
                original_exception=e
            )
        except SinkError:
            self.abort()
            raise

        self.state = "finalized"
        self._artifact_path = self.destination
        self._temp_path = None
        logger.info(f"Finalized artifact {self.destination} with {self.lines_written} data lines")
        return self.destination

    def abort(self) -> None:
        """Release all layers and delete the partial artifact. Safe to repeat."""
        if self.state in ("finalized", "aborted"):
            return
        if self._layers is not None:
            self._layers.abort()
        if self._temp_path is not None:
            try:
                self._temp_path.unlink(missing_ok=True)
            except OSError as e:
                logger.error(f"Could not delete partial artifact {self._temp_path}: {e}")
        self.state = "aborted"
        logger.warning(
            f"Aborted artifact {self.destination} after {self.lines_written} data lines; "
            "nothing was published"
        )

    def __enter__(self) -> "FramedSink":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        # Leaving the block without finalize() never publishes
        if self.state != "finalized":
            self.abort()
