"""
Compression handlers for database dumps.

Dumps are stored as gzip streams: {dump}.sql -> {dump}.sql.gz. Both
directions are streaming and byte-exact, and both remove their partial
output when they fail.
"""

import gzip
import logging
import os
import shutil


logger = logging.getLogger(__name__)

COMPRESSED_SUFFIX = '.gz'
CHUNK_SIZE = 1024 * 1024


class CompressionError(Exception):
    """Raised when compressing or decompressing a dump fails."""
    pass


def compress_file(raw_path: str, remove_source: bool = True) -> str:
    """
    Compress a raw dump next to itself.

    Args:
        raw_path: Path of the uncompressed dump
        remove_source: Delete raw_path once the compressed copy is complete

    Returns:
        Path of the compressed file (raw_path + '.gz')

    Raises:
        CompressionError: If the raw file is missing or compression fails
    """
    if not os.path.isfile(raw_path):
        raise CompressionError(f"Dump file not found: {raw_path}")

    compressed_path = f"{raw_path}{COMPRESSED_SUFFIX}"

    try:
        with open(raw_path, 'rb') as src, gzip.open(compressed_path, 'wb') as dst:
            shutil.copyfileobj(src, dst, CHUNK_SIZE)
    except Exception as e:
        _remove_partial(compressed_path)
        raise CompressionError(f"Failed to compress {os.path.basename(raw_path)}: {e}")

    if remove_source:
        try:
            os.remove(raw_path)
        except OSError as e:
            raise CompressionError(f"Failed to remove raw dump {os.path.basename(raw_path)}: {e}")

    logger.debug(f"Compressed {os.path.basename(raw_path)} -> {os.path.basename(compressed_path)}")
    return compressed_path


def decompress_file(compressed_path: str, output_path: str) -> str:
    """
    Decompress a gzip dump into output_path.

    Args:
        compressed_path: Path of the .gz artifact
        output_path: Destination for the plain SQL

    Returns:
        output_path

    Raises:
        CompressionError: If the artifact is missing, corrupt or unreadable
    """
    if not os.path.isfile(compressed_path):
        raise CompressionError(f"Compressed file not found: {compressed_path}")

    try:
        with gzip.open(compressed_path, 'rb') as src, open(output_path, 'wb') as dst:
            shutil.copyfileobj(src, dst, CHUNK_SIZE)
    except Exception as e:
        _remove_partial(output_path)
        raise CompressionError(f"Failed to decompress {os.path.basename(compressed_path)}: {e}")

    return output_path


def is_compressed(filename: str) -> bool:
    return filename.endswith(COMPRESSED_SUFFIX)


def _remove_partial(path: str):
    if os.path.exists(path):
        try:
            os.remove(path)
        except OSError as e:
            logger.warning(f"Failed to remove partial file {path}: {e}")
