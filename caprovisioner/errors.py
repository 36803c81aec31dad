"""
Exceptions raised by the provisioner core.

Every error derives from ProvisionerError so callers can catch the whole
family in one place.
"""


class ProvisionerError(Exception):
    """Base exception for provisioner errors."""

    pass


class NotFoundError(ProvisionerError):
    """Raised when no provisioner matches, or a required file cannot be read."""

    def __init__(self, message: str = "Provisioner not found"):
        super().__init__(message)


class DecryptionError(ProvisionerError):
    """Raised when the password does not unlock the provisioner key."""

    def __init__(self, message: str = "Failed to decrypt provisioner key"):
        super().__init__(message)


class InvalidArgumentError(ProvisionerError, ValueError):
    """Raised for empty subjects, missing lookup filters and similar input errors."""

    pass


class SigningUnavailableError(ProvisionerError):
    """Raised when the provisioner has no usable signing key."""

    def __init__(self, message: str = "Provisioner has no usable signing key"):
        super().__init__(message)


class StoreError(ProvisionerError):
    """Raised when the provisioner store exists but cannot be parsed."""

    pass
