from migration.sinks.encryption import EncryptionContext, load_private_key
from migration.sinks.framed import FramedSink
from migration.sinks.formatter import LineFormatter
from migration.sinks.reader import ArtifactContents, read_artifact, read_plaintext

__all__ = [
    "EncryptionContext",
    "load_private_key",
    "FramedSink",
    "LineFormatter",
    "ArtifactContents",
    "read_artifact",
    "read_plaintext",
]
