"""
caprovisioner - one-time tokens for certificate authority provisioners.

Unlocks a password-protected provisioner key from the CA configuration store
and issues short-lived signed tokens that a CA accepts as authorization to
request a certificate for a subject.
"""

__version__ = "0.1.0"

# Lookup and issuance
from .directory import ProvisionerDirectory, ProvisionerRecord
from .provisioner import Provisioner

# Key management
from .keys import (
    SigningKey,
    JWKSigningKey,
    decrypt_key,
    encrypt_key,
    generate_key,
    thumbprint,
)
from .fingerprint import root_fingerprint

# Errors
from .errors import (
    ProvisionerError,
    NotFoundError,
    DecryptionError,
    InvalidArgumentError,
    SigningUnavailableError,
    StoreError,
)


__all__ = [
    "__version__",
    # Core
    "ProvisionerDirectory",
    "ProvisionerRecord",
    "Provisioner",
    # Key management
    "SigningKey",
    "JWKSigningKey",
    "decrypt_key",
    "encrypt_key",
    "generate_key",
    "thumbprint",
    "root_fingerprint",
    # Errors
    "ProvisionerError",
    "NotFoundError",
    "DecryptionError",
    "InvalidArgumentError",
    "SigningUnavailableError",
    "StoreError",
]
