"""
Content fingerprint of the CA root certificate.

The "sha" claim binds a token to one trusted root: the CA recomputes the
hash of its own root and rejects tokens minted against a different one.
"""

import hashlib
from pathlib import Path
from typing import Union

from caprovisioner.errors import NotFoundError

_CHUNK_SIZE = 64 * 1024


def root_fingerprint(path: Union[str, Path]) -> str:
    """
    Hash the raw bytes of a root certificate file.

    Args:
        path: Path to the root certificate (PEM or DER, hashed as-is).

    Returns:
        Lowercase hex SHA-256 digest.

    Raises:
        NotFoundError: If the file cannot be read.
    """
    digest = hashlib.sha256()
    try:
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
                digest.update(chunk)
    except OSError as e:
        raise NotFoundError(f"Cannot read CA root {path}: {e.strerror or e}") from e
    return digest.hexdigest()
