"""
Streaming public-key encryption with integrity protection.

Each artifact gets a fresh AES-256-GCM data key, wrapped with the
recipient's RSA public key (OAEP/SHA-256). Plaintext is cut into segments
of at most 64 KiB, each sealed separately::

    MAGIC | u16 wrapped-key length | wrapped key | 7-byte nonce prefix
    ( u32 segment length | AES-GCM(segment) )*

The nonce of segment ``i`` is ``prefix | u32 i | u8 final``. Only the last
segment carries ``final = 1``, so a truncated, reordered or spliced stream
fails to decrypt instead of yielding a shorter plaintext.
"""

from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Union
import io
import os
import struct
import logging

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from core.exceptions import ConfigurationError, EncryptionError

logger = logging.getLogger(__name__)

MAGIC = b"BMENC1"
SEGMENT_SIZE = 64 * 1024
NONCE_PREFIX_SIZE = 7
MAX_SEGMENTS = 2 ** 32

_OAEP = padding.OAEP(
    mgf=padding.MGF1(algorithm=hashes.SHA256()),
    algorithm=hashes.SHA256(),
    label=None,
)


def _nonce(prefix: bytes, counter: int, final: bool) -> bytes:
    return prefix + struct.pack(">IB", counter, 1 if final else 0)


def _read_pem(key_ref: str) -> bytes:
    """``key_ref`` is a file path, or ``env:NAME`` for a PEM held in the environment."""
    if key_ref.startswith("env:"):
        name = key_ref[4:]
        value = os.environ.get(name)
        if not value:
            raise ConfigurationError(
                "Encryption key environment variable is not set",
                context={"key_ref": key_ref}
            )
        return value.encode("ascii")
    path = Path(key_ref)
    try:
        return path.read_bytes()
    except OSError as e:
        raise ConfigurationError(
            "Encryption key file is not readable",
            context={"key_ref": key_ref},
            original_exception=e
        )


class EncryptionContext:
    """
    The resolved encryption capability handed to the sink.

    Built once before the run starts so that a missing or invalid key is a
    ConfigurationError, never a failure halfway through the artifact.
    """

    def __init__(self, public_key: rsa.RSAPublicKey, key_ref: Optional[str] = None):
        if not isinstance(public_key, rsa.RSAPublicKey):
            raise ConfigurationError(
                "Encryption key must be an RSA public key",
                context={"key_ref": key_ref, "key_type": type(public_key).__name__}
            )
        self.public_key = public_key
        self.key_ref = key_ref

    @classmethod
    def from_pem(cls, pem: bytes, key_ref: Optional[str] = None) -> "EncryptionContext":
        try:
            key = serialization.load_pem_public_key(pem)
        except ValueError as e:
            raise ConfigurationError(
                "Encryption key is not a valid PEM public key",
                context={"key_ref": key_ref},
                original_exception=e
            )
        return cls(key, key_ref=key_ref)

    @classmethod
    def from_key_ref(cls, key_ref: str) -> "EncryptionContext":
        return cls.from_pem(_read_pem(key_ref), key_ref=key_ref)

    def wrap_key(self, data_key: bytes) -> bytes:
        return self.public_key.encrypt(data_key, _OAEP)

    def open_writer(self, raw: BinaryIO) -> "EncryptingWriter":
        return EncryptingWriter(raw, self)


class EncryptingWriter(io.RawIOBase):
    """
    Write-only stream that encrypts into ``raw`` segment by segment.

    ``close()`` seals the final segment; it does not close ``raw``.
    ``discard()`` closes without sealing, leaving a stream that will never
    decrypt as complete.
    """

    def __init__(self, raw: BinaryIO, context: EncryptionContext):
        super().__init__()
        self._raw = raw
        data_key = AESGCM.generate_key(bit_length=256)
        self._aead = AESGCM(data_key)
        self._prefix = os.urandom(NONCE_PREFIX_SIZE)
        self._counter = 0
        self._pending = bytearray()
        self.bytes_in = 0

        wrapped = context.wrap_key(data_key)
        self._raw.write(MAGIC + struct.pack(">H", len(wrapped)) + wrapped + self._prefix)

    def writable(self) -> bool:
        return True

    def write(self, b) -> int:
        if self.closed:
            raise ValueError("write to closed EncryptingWriter")
        data = bytes(b)
        self._pending += data
        self.bytes_in += len(data)
        # Keep the tail pending: the last segment must be sealed as final
        while len(self._pending) > SEGMENT_SIZE:
            self._seal(bytes(self._pending[:SEGMENT_SIZE]), final=False)
            del self._pending[:SEGMENT_SIZE]
        return len(data)

    def _seal(self, plaintext: bytes, final: bool) -> None:
        if self._counter >= MAX_SEGMENTS:
            raise EncryptionError("Encrypted stream exceeded the segment limit")
        ciphertext = self._aead.encrypt(_nonce(self._prefix, self._counter, final), plaintext, None)
        self._raw.write(struct.pack(">I", len(ciphertext)) + ciphertext)
        self._counter += 1

    def close(self) -> None:
        if self.closed:
            return
        try:
            self._seal(bytes(self._pending), final=True)
            self._pending.clear()
        finally:
            super().close()

    def discard(self) -> None:
        self._pending.clear()
        super().close()


# ============================================================================
# Decryption (artifact verification / downstream consumers)
# ============================================================================

def load_private_key(key: Union[str, bytes, Path], password: Optional[bytes] = None) -> rsa.RSAPrivateKey:
    pem = key if isinstance(key, bytes) else Path(key).read_bytes()
    try:
        return serialization.load_pem_private_key(pem, password=password)
    except (ValueError, TypeError) as e:
        raise ConfigurationError("Invalid private key", original_exception=e)


def _read_exact(src: BinaryIO, size: int, what: str) -> bytes:
    data = src.read(size)
    if data is None or len(data) != size:
        raise EncryptionError(f"Encrypted stream truncated while reading {what}")
    return data


def decrypt_segments(src: BinaryIO, private_key: rsa.RSAPrivateKey) -> Iterator[bytes]:
    """Yield plaintext segments, verifying every tag and the final marker."""
    if src.read(len(MAGIC)) != MAGIC:
        raise EncryptionError("Not an encrypted artifact (bad magic)")
    (wrapped_len,) = struct.unpack(">H", _read_exact(src, 2, "key length"))
    wrapped = _read_exact(src, wrapped_len, "wrapped key")
    prefix = _read_exact(src, NONCE_PREFIX_SIZE, "nonce prefix")
    try:
        aead = AESGCM(private_key.decrypt(wrapped, _OAEP))
    except ValueError as e:
        raise EncryptionError("Cannot unwrap data key with this private key", original_exception=e)

    counter = 0
    while True:
        header = src.read(4)
        if not header:
            raise EncryptionError("Encrypted stream ended without a final segment")
        if len(header) != 4:
            raise EncryptionError("Encrypted stream truncated in segment header")
        (length,) = struct.unpack(">I", header)
        ciphertext = _read_exact(src, length, "segment")
        try:
            yield aead.decrypt(_nonce(prefix, counter, False), ciphertext, None)
        except InvalidTag:
            try:
                plaintext = aead.decrypt(_nonce(prefix, counter, True), ciphertext, None)
            except InvalidTag:
                raise EncryptionError(f"Integrity check failed on segment {counter}")
            if src.read(1):
                raise EncryptionError("Data found after the final segment")
            yield plaintext
            return
        counter += 1


class DecryptingReader(io.RawIOBase):
    """Readable stream over ``decrypt_segments`` so decompressors can wrap it."""

    def __init__(self, src: BinaryIO, private_key: rsa.RSAPrivateKey):
        super().__init__()
        self._segments = decrypt_segments(src, private_key)
        self._buffer = b""

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        while not self._buffer:
            try:
                self._buffer = next(self._segments)
            except StopIteration:
                return 0
        size = min(len(b), len(self._buffer))
        b[:size] = self._buffer[:size]
        self._buffer = self._buffer[size:]
        return size
