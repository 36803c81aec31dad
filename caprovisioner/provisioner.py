"""
Provisioner - issues one-time tokens (OTTs) for certificate requests.

A Provisioner holds a decrypted signing key and the CA it vouches to. Each
token it issues is a JWS over a claim set that names the subject, the CA
sign endpoint, a fingerprint of the CA root and a short validity window.
"""

import json
import logging
import secrets
import time
from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence

from jwcrypto.common import base64url_encode

from caprovisioner import config
from caprovisioner.errors import InvalidArgumentError, SigningUnavailableError
from caprovisioner.fingerprint import root_fingerprint
from caprovisioner.keys import SigningKey

logger = logging.getLogger(__name__)


def _encode_segment(data: Dict[str, Any]) -> bytes:
    """Base64url JSON segment; built by hand because SigningKey signs raw bytes, not through jws.JWS."""
    return base64url_encode(
        json.dumps(data, sort_keys=True, separators=(",", ":"))
    ).encode("ascii")


class Provisioner:
    """
    An authenticated provisioner able to sign one-time tokens.

    Instances are normally obtained from ProvisionerDirectory.resolve().
    They are immutable; the signing key is released by close() or by
    leaving a ``with`` block.

    Example:
        >>> with directory.resolve("ops", "", "https://ca:9000", "root_ca.crt", b"pw") as p:
        ...     token = p.issue_token("host1.internal")
    """

    def __init__(
        self,
        name: str,
        kid: str,
        ca_url: str,
        ca_root: str,
        signing_key: Optional[SigningKey],
        token_lifetime: timedelta = config.DEFAULT_TOKEN_LIFETIME,
    ):
        """
        Args:
            name: Provisioner name, used as the token issuer.
            kid: Key identifier of the provisioner key.
            ca_url: Base URL of the CA the tokens are for.
            ca_root: Path to the CA root certificate.
            signing_key: Decrypted key. Ownership passes to the Provisioner.
            token_lifetime: Validity window of issued tokens, whole seconds.

        Raises:
            InvalidArgumentError: If token_lifetime is not a positive whole
                number of seconds.
        """
        if token_lifetime <= timedelta(0) or token_lifetime % timedelta(seconds=1):
            raise InvalidArgumentError(
                f"Token lifetime must be a positive whole number of seconds, got {token_lifetime}"
            )
        self._name = name
        self._kid = kid
        self._ca_url = ca_url
        self._ca_root = ca_root
        self._signing_key = signing_key
        self._token_lifetime = token_lifetime

    @property
    def name(self) -> str:
        return self._name

    @property
    def kid(self) -> str:
        return self._kid

    @property
    def ca_url(self) -> str:
        return self._ca_url

    @property
    def ca_root(self) -> str:
        return self._ca_root

    @property
    def token_lifetime(self) -> timedelta:
        return self._token_lifetime

    @property
    def signing_key(self) -> Optional[SigningKey]:
        return self._signing_key

    @property
    def audience(self) -> str:
        """The CA endpoint tokens are addressed to."""
        return config.get_audience(self._ca_url)

    def issue_token(self, subject: str, sans: Optional[Sequence[str]] = None) -> str:
        """
        Sign a one-time token for a certificate subject.

        Args:
            subject: Entity the certificate will cover (e.g., a hostname).
            sans: Optional explicit SAN list. Defaults to ``[subject]``.

        Returns:
            A JWS compact serialized token.

        Raises:
            InvalidArgumentError: If the subject or a SAN is empty.
            SigningUnavailableError: If the key is missing, invalid or released.
            NotFoundError: If the CA root cannot be read.
        """
        if not subject:
            raise InvalidArgumentError("Token subject cannot be empty")
        san_list = self._san_list(subject, sans)

        key = self._signing_key
        if key is None or not key.usable:
            raise SigningUnavailableError()

        now = int(time.time())
        lifetime = int(self._token_lifetime.total_seconds())

        claims = {
            "iss": self._name,
            "sub": subject,
            "aud": self.audience,
            "iat": now,
            "nbf": now,
            "exp": now + lifetime,
            "jti": secrets.token_hex(32),
            "sha": root_fingerprint(self._ca_root),
            "sans": san_list,
        }
        header = {
            "alg": key.algorithm,
            "typ": "JWT",
            "kid": self._kid or key.key_id,
        }

        signing_input = _encode_segment(header) + b"." + _encode_segment(claims)
        signature = key.sign(signing_input)
        token = signing_input.decode("ascii") + "." + base64url_encode(signature)

        logger.debug(f"Issued token {claims['jti']} for {subject} (provisioner {self._kid})")
        return token

    @staticmethod
    def _san_list(subject: str, sans: Optional[Sequence[str]]) -> List[str]:
        if sans is None:
            return [subject]
        if isinstance(sans, str):
            raise InvalidArgumentError("SANs must be a sequence of names, not a string")
        san_list = list(sans)
        if not san_list or not all(san_list):
            raise InvalidArgumentError("SANs cannot be empty")
        return san_list

    def close(self) -> None:
        """Release the signing key. Subsequent issue_token() calls fail."""
        if self._signing_key is not None:
            self._signing_key.release()
            self._signing_key = None

    def __enter__(self) -> "Provisioner":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"Provisioner(name={self._name!r}, kid={self._kid!r}, "
            f"ca_url={self._ca_url!r}, token_lifetime={self._token_lifetime})"
        )
