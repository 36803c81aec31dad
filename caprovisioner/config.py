# caprovisioner/config.py
"""
Centralized configuration for the provisioner.

Defaults are read from environment variables so the CLI can be pointed at a
different store or lifetime without code changes. Library classes never read
these implicitly; they take explicit arguments and the CLI passes these
values in.

Usage:
    from caprovisioner.config import get_step_path, DEFAULT_TOKEN_LIFETIME

    directory = ProvisionerDirectory(get_step_path())

Environment Variables:
    STEPPATH: Root of the provisioner store (default: ~/.step)
    CAPROVISIONER_CONFIG_FILE: Store file relative to the root (default: config/ca.json)
    CAPROVISIONER_TOKEN_LIFETIME: Token validity in seconds (default: 300)
    CAPROVISIONER_PASSWORD: Key password used by the CLI when no file is given
    CAPROVISIONER_MAX_PBKDF2_ITERATIONS: PBES2 iteration cap for stored keys (default: 600000)
"""

import os
from datetime import timedelta
from pathlib import Path
from typing import Final

# =============================================================================
# Store Configuration
# =============================================================================

# Environment variable naming the store root
STEP_PATH_ENV: Final[str] = "STEPPATH"

DEFAULT_STEP_PATH: Final[Path] = Path.home() / ".step"

# Provisioner list, relative to the store root
CONFIG_FILE: Final[str] = os.getenv(
    "CAPROVISIONER_CONFIG_FILE",
    "config/ca.json"
)

# =============================================================================
# Token Configuration
# =============================================================================

DEFAULT_TOKEN_LIFETIME: Final[timedelta] = timedelta(
    seconds=int(os.getenv("CAPROVISIONER_TOKEN_LIFETIME", "300"))
)

# Path on the CA that accepts one-time tokens
AUDIENCE_PATH: Final[str] = "/1.0/sign"

PASSWORD_ENV: Final[str] = "CAPROVISIONER_PASSWORD"

# Upper bound on PBES2 iterations accepted when unlocking a stored key
MAX_PBKDF2_ITERATIONS: Final[int] = int(os.getenv(
    "CAPROVISIONER_MAX_PBKDF2_ITERATIONS",
    "600000"
))

# =============================================================================
# Helper Functions
# =============================================================================


def get_step_path() -> Path:
    """
    Return the store root, honouring STEPPATH when it is set.

    Read at call time rather than import time so tests and long-lived
    processes see the current environment.
    """
    value = os.environ.get(STEP_PATH_ENV)
    return Path(value) if value else DEFAULT_STEP_PATH


def get_audience(ca_url: str) -> str:
    """
    Build the token audience for a CA.

    Args:
        ca_url: Base URL of the CA (e.g., "https://ca.example.com:9000")

    Returns:
        The sign endpoint URL (e.g., "https://ca.example.com:9000/1.0/sign")
    """
    return f"{ca_url.rstrip('/')}{AUDIENCE_PATH}"


# =============================================================================
# Configuration Summary (for debugging)
# =============================================================================

def print_config() -> None:
    """Print current configuration (useful for debugging)."""
    print("Provisioner Configuration:")
    print(f"  STEPPATH:               {get_step_path()}")
    print(f"  CONFIG_FILE:            {CONFIG_FILE}")
    print(f"  DEFAULT_TOKEN_LIFETIME: {int(DEFAULT_TOKEN_LIFETIME.total_seconds())}s")
    print(f"  AUDIENCE_PATH:          {AUDIENCE_PATH}")
    print(f"  MAX_PBKDF2_ITERATIONS:  {MAX_PBKDF2_ITERATIONS}")


if __name__ == "__main__":
    print_config()
