"""
Read a finished artifact back through its layers and check the frame
"""

from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Iterator, List, Optional, Union
import bz2
import gzip
import io
import re

from cryptography.hazmat.primitives.asymmetric import rsa

from core.exceptions import EncryptionError, SinkError
from migration.sinks.encryption import DecryptingReader


@dataclass
class ArtifactContents:
    header: str
    footer_label: str
    footer_count: int
    data_line_count: int
    lines: List[str] = field(default_factory=list)


@contextmanager
def open_plaintext(
    path: Union[str, Path],
    compression: str = "none",
    private_key: Optional[rsa.RSAPrivateKey] = None,
) -> Iterator[BinaryIO]:
    """Yield the framed byte stream: file -> [decrypt] -> [decompress]."""
    with open(path, "rb") as raw:
        stream: BinaryIO = raw
        if private_key is not None:
            stream = io.BufferedReader(DecryptingReader(raw, private_key))
        if compression == "gzip":
            stream = gzip.GzipFile(filename="", mode="rb", fileobj=stream)
        elif compression == "bz2":
            stream = bz2.BZ2File(stream, mode="rb")
        elif compression != "none":
            raise SinkError(f"Unsupported compression: {compression}")
        yield stream


def read_plaintext(
    path: Union[str, Path],
    compression: str = "none",
    private_key: Optional[rsa.RSAPrivateKey] = None,
) -> bytes:
    try:
        with open_plaintext(path, compression, private_key) as stream:
            return stream.read()
    except EncryptionError:
        raise
    except (OSError, EOFError) as e:
        raise SinkError("Artifact could not be decoded", context={"path": str(path)}, original_exception=e)


def read_artifact(
    path: Union[str, Path],
    compression: str = "none",
    private_key: Optional[rsa.RSAPrivateKey] = None,
    encoding: str = "utf-8",
    footer_label: str = "Total Records",
    keep_lines: bool = True,
) -> ArtifactContents:
    """
    Stream the artifact and verify its frame.

    Raises:
        SinkError: empty artifact, missing or malformed footer, or a footer
            count that differs from the number of data lines
        EncryptionError: ciphertext was truncated or tampered with
    """
    footer_re = re.compile(rf"^{re.escape(footer_label)}: (0|[1-9][0-9]*)$")
    header: Optional[str] = None
    previous: Optional[str] = None
    lines: List[str] = []
    count = 0

    try:
        with open_plaintext(path, compression, private_key) as stream:
            text = io.TextIOWrapper(stream, encoding=encoding, newline="")
            for raw_line in text:
                line = raw_line.rstrip("\r\n")
                if header is None:
                    header = line
                    continue
                if previous is not None:
                    count += 1
                    if keep_lines:
                        lines.append(previous)
                previous = line
    except EncryptionError:
        raise
    except (OSError, EOFError, UnicodeDecodeError) as e:
        raise SinkError("Artifact could not be decoded", context={"path": str(path)}, original_exception=e)

    if header is None:
        raise SinkError("Artifact is empty", context={"path": str(path)})
    match = footer_re.match(previous) if previous is not None else None
    if match is None:
        raise SinkError(
            "Artifact has no valid footer",
            context={"path": str(path), "last_line": previous}
        )

    footer_count = int(match.group(1))
    if footer_count != count:
        raise SinkError(
            "Footer count does not match data lines",
            context={"path": str(path), "footer_count": footer_count, "data_lines": count}
        )

    return ArtifactContents(
        header=header,
        footer_label=footer_label,
        footer_count=footer_count,
        data_line_count=count,
        lines=lines,
    )
