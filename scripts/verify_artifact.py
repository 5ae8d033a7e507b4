"""
Verify a finished artifact: decrypt, decompress and check the frame.

Usage:
    python scripts/verify_artifact.py PATH [--private-key KEY.pem] [--compression gzip]

Compression, encoding and footer label default to the SINK_* settings.
"""

import argparse
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.exceptions import MigrationError
from core.logging import setup_logging
from migration.sinks.encryption import load_private_key
from migration.sinks.reader import read_artifact

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Verify a migration artifact")
    parser.add_argument("path", help="Artifact to verify")
    parser.add_argument("--private-key", help="PEM private key (required for encrypted artifacts)")
    parser.add_argument("--compression", default=settings.SINK_COMPRESSION, choices=["none", "gzip", "bz2"])
    parser.add_argument("--encoding", default=settings.SINK_ENCODING)
    parser.add_argument("--footer-label", default=settings.SINK_FOOTER_LABEL)
    return parser.parse_args(argv)


def verify(argv=None) -> int:
    args = parse_args(argv)
    try:
        private_key = load_private_key(args.private_key) if args.private_key else None
        contents = read_artifact(
            args.path,
            compression=args.compression,
            private_key=private_key,
            encoding=args.encoding,
            footer_label=args.footer_label,
            keep_lines=False,
        )
    except (MigrationError, OSError) as e:
        logger.error(f"Artifact {args.path} is NOT valid: {e}")
        return 1

    logger.info(
        f"Artifact {args.path} is valid: header={contents.header!r}, "
        f"data lines={contents.data_line_count}, footer count={contents.footer_count}"
    )
    return 0


if __name__ == "__main__":
    setup_logging()
    sys.exit(verify())
