"""File handler module: name validation and encoding-aware read/write.

Provides the file I/O used by draft storage.  All functions are
synchronous; the coordinator composes them via ``run_sync()``.
"""

from pathlib import Path

from charset_normalizer import from_bytes

# =============================================================================
# Name Validation
# =============================================================================


def validate_path_component(name: str, what: str = "name") -> str:
    """Validate a single path component such as an application or file name.

    Args:
        name: The component to check.
        what: Label used in error messages.

    Returns:
        The unchanged *name*.

    Raises:
        ValueError: If *name* is empty, a relative reference, or contains
            a path separator.
    """
    if not name or name in (".", ".."):
        raise ValueError(f"Invalid {what}: {name!r}")
    if "/" in name or "\\" in name or "\x00" in name:
        raise ValueError(f"{what.capitalize()} must not contain separators: {name!r}")
    return name


# =============================================================================
# File Read/Write
# =============================================================================


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a file with automatic encoding detection.

    Args:
        path: Path to the file to read.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    return decode_bytes(path.read_bytes())


def decode_bytes(raw: bytes) -> tuple[str, str]:
    """Decode file content of unknown encoding.

    Valid UTF-8 is taken as is; anything else goes through charset-normalizer.
    Falls back to UTF-8 with replacement characters when detection fails.
    Used for draft files and for blobs read from the repository alike.

    Args:
        raw: Raw file bytes.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    if not raw:
        return ("", "utf-8")
    try:
        return (raw.decode("utf-8"), "utf-8")
    except UnicodeDecodeError:
        pass

    result = from_bytes(raw).best()
    if result is None:
        # Detection failed, fall back to utf-8
        encoding = "utf-8"
        content = raw.decode(encoding, errors="replace")
    else:
        encoding = result.encoding
        # Normalize ascii to utf-8 (ascii is a strict subset of utf-8)
        if encoding == "ascii":
            encoding = "utf-8"
        content = str(result)
    return (content, encoding)


def write_file(
    path: Path, content: str, encoding: str = "utf-8"
) -> int:
    """Write content to a file, creating parent directories as needed.

    Args:
        path: Path to the output file.
        content: String content to write.
        encoding: Encoding to use (default: utf-8).

    Returns:
        Number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    encoded = content.encode(encoding)
    path.write_bytes(encoded)
    return len(encoded)
