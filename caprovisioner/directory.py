"""
Provisioner Directory.

Looks up provisioners in the CA configuration store, unlocks the matching
key with the operator's password and hands back a ready-to-use Provisioner.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from caprovisioner import config
from caprovisioner.errors import (
    DecryptionError,
    InvalidArgumentError,
    NotFoundError,
    StoreError,
)
from caprovisioner.keys import JWKSigningKey, Password, decrypt_key, thumbprint
from caprovisioner.provisioner import Provisioner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProvisionerRecord:
    """A provisioner entry as stored in the CA configuration."""

    name: str
    kid: str
    encrypted_key: str
    type: str = "JWK"
    public_key: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProvisionerRecord":
        """
        Build a record from its store representation.

        The kid is taken from a top-level "kid" member or from the stored
        public key.

        Raises:
            KeyError: If the kid or the encrypted key is missing.
        """
        public_key = data.get("key") or {}
        kid = data.get("kid") or public_key.get("kid")
        if not kid:
            raise KeyError("kid")
        encrypted_key = data["encryptedKey"]
        if not encrypted_key:
            raise KeyError("encryptedKey")
        return cls(
            name=data.get("name") or "",
            kid=kid,
            encrypted_key=encrypted_key,
            type=data.get("type", "JWK"),
            public_key=public_key,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the store representation."""
        data: Dict[str, Any] = {"type": self.type, "name": self.name}
        key = dict(self.public_key)
        key.setdefault("kid", self.kid)
        data["key"] = key
        data["encryptedKey"] = self.encrypted_key
        return data


class ProvisionerDirectory:
    """
    Read-only view of the provisioners configured for a CA.

    The store is a JSON file (by default ``<root>/config/ca.json``) with the
    provisioners under ``authority.provisioners``. It is read in full on
    every lookup, so one directory can be shared across threads.

    Example:
        >>> directory = ProvisionerDirectory("/home/ops/.step")
        >>> p = directory.resolve(name="ops", kid="", ca_url="https://ca:9000",
        ...                       ca_root="/home/ops/.step/certs/root_ca.crt",
        ...                       password=b"secret")
        >>> token = p.issue_token("host1.internal")
    """

    def __init__(self, root_path: Union[str, Path], config_file: str = config.CONFIG_FILE):
        """
        Args:
            root_path: Store root directory.
            config_file: Store file, relative to root_path.
        """
        self._root = Path(root_path)
        self._config_path = self._root / config_file

    @classmethod
    def from_env(cls) -> "ProvisionerDirectory":
        """Directory rooted at $STEPPATH (or ~/.step)."""
        return cls(config.get_step_path())

    @property
    def root_path(self) -> Path:
        return self._root

    @property
    def config_path(self) -> Path:
        return self._config_path

    def load(self) -> List[ProvisionerRecord]:
        """
        Read every provisioner record from the store.

        Entries without a kid or encrypted key are skipped with a warning.

        Raises:
            NotFoundError: If the store file cannot be read.
            StoreError: If the store is not valid JSON of the expected shape.
        """
        try:
            with open(self._config_path, "r") as f:
                data = json.load(f)
        except OSError as e:
            raise NotFoundError(
                f"Cannot read provisioner store {self._config_path}: {e.strerror or e}"
            ) from e
        except json.JSONDecodeError as e:
            raise StoreError(f"Invalid provisioner store {self._config_path}: {e}") from e

        try:
            entries = data["authority"]["provisioners"]
        except (KeyError, TypeError):
            entries = None
        if not isinstance(entries, list):
            raise StoreError(
                f"Provisioner store {self._config_path} has no authority.provisioners list"
            )

        records = []
        for i, entry in enumerate(entries):
            if not isinstance(entry, dict):
                logger.warning(f"Invalid provisioner entry {i}: not an object")
                continue
            try:
                records.append(ProvisionerRecord.from_dict(entry))
            except KeyError as e:
                logger.warning(f"Invalid provisioner entry {i}: missing {e}")

        logger.debug(f"Loaded {len(records)} provisioners from {self._config_path}")
        return records

    def list(self) -> List[ProvisionerRecord]:
        """All records, in store order."""
        return self.load()

    def __iter__(self) -> Iterator[ProvisionerRecord]:
        return iter(self.load())

    def find(self, name: str = "", kid: str = "") -> ProvisionerRecord:
        """
        Find the single record matching a kid or, failing that, a name.

        The kid wins when both are given; the name is then ignored.

        Raises:
            InvalidArgumentError: If neither name nor kid is given.
            NotFoundError: If no record, or more than one, matches.
        """
        if kid:
            matches = [r for r in self.load() if r.kid == kid]
            label = f"kid {kid!r}"
        elif name:
            matches = [r for r in self.load() if r.name == name]
            label = f"name {name!r}"
        else:
            raise InvalidArgumentError("A provisioner name or kid is required")

        if not matches:
            raise NotFoundError(f"No provisioner with {label}")
        if len(matches) > 1:
            raise NotFoundError(f"Provisioner {label} is ambiguous ({len(matches)} matches)")
        return matches[0]

    def resolve(
        self,
        name: str,
        kid: str,
        ca_url: str,
        ca_root: str,
        password: Password,
        token_lifetime: Optional[timedelta] = None,
    ) -> Provisioner:
        """
        Authenticate against a provisioner and return it ready to sign.

        Args:
            name: Provisioner name, may be empty when kid is given.
            kid: Key identifier, takes precedence over name.
            ca_url: CA base URL, passed through to the Provisioner.
            ca_root: CA root certificate path, passed through.
            password: Password protecting the provisioner key.
            token_lifetime: Validity of issued tokens (default from config).

        Returns:
            A Provisioner carrying the record's own name and kid.

        Raises:
            NotFoundError: If no single record matches.
            DecryptionError: If the password does not unlock the key, or the
                unlocked key does not belong to the record.
        """
        record = self.find(name=name, kid=kid)

        key = decrypt_key(record.encrypted_key, password)
        if thumbprint(key) != record.kid and key.get("kid") != record.kid:
            raise DecryptionError()

        return Provisioner(
            name=record.name,
            kid=record.kid,
            ca_url=ca_url,
            ca_root=ca_root,
            signing_key=JWKSigningKey(key),
            token_lifetime=config.DEFAULT_TOKEN_LIFETIME if token_lifetime is None else token_lifetime,
        )
