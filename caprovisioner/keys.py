"""
Provisioner key handling.

Provisioner keys are stored as JWKs wrapped in a password-protected JWE
(PBES2-HS256+A128KW). This module unwraps them, wraps new ones, and exposes
the decrypted key through the SigningKey interface so token issuance does
not depend on the key type.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Optional, Union

from jwcrypto import jwa, jwe, jwk
from jwcrypto.common import JWException, base64url_encode, json_encode
from jwcrypto.jwa import JWA

from caprovisioner import config
from caprovisioner.errors import DecryptionError, SigningUnavailableError

logger = logging.getLogger(__name__)


# Key wrapping used for keys at rest
KEY_WRAP_ALGORITHM = "PBES2-HS256+A128KW"
CONTENT_ENCRYPTION = "A128GCM"

ALLOWED_KEY_WRAP_ALGORITHMS = [
    "PBES2-HS256+A128KW",
    "PBES2-HS384+A192KW",
    "PBES2-HS512+A256KW",
]
ALLOWED_CONTENT_ENCRYPTION = [
    "A128GCM",
    "A192GCM",
    "A256GCM",
    "A128CBC-HS256",
    "A192CBC-HS384",
    "A256CBC-HS512",
]

SIGNING_ALGORITHMS = {
    "ES256", "ES384", "ES512",
    "RS256", "RS384", "RS512",
    "PS256", "PS384", "PS512",
    "EdDSA",
}

# (kty, crv) -> JWS algorithm, used when the key carries no "alg"
_DEFAULT_ALGORITHMS = {
    ("EC", "P-256"): "ES256",
    ("EC", "P-384"): "ES384",
    ("EC", "P-521"): "ES512",
    ("OKP", "Ed25519"): "EdDSA",
    ("OKP", "Ed448"): "EdDSA",
    ("RSA", None): "RS256",
}

CURVES = {
    "EC": ("P-256", "P-384", "P-521"),
    "OKP": ("Ed25519", "Ed448"),
}

# Private members removed from a JWK when it is released
_PRIVATE_MEMBERS = {
    "EC": ("d",),
    "OKP": ("d",),
    "RSA": ("d", "p", "q", "dp", "dq", "qi", "oth"),
}


Password = Union[str, bytes]


def _password_key(password: Password) -> jwk.JWK:
    if isinstance(password, str):
        password = password.encode("utf-8")
    return jwk.JWK(kty="oct", k=base64url_encode(password))


def select_algorithm(key: jwk.JWK) -> Optional[str]:
    """Return the JWS algorithm for a key, or None if the key cannot sign."""
    alg = key.get("alg")
    if alg in SIGNING_ALGORITHMS:
        return alg
    kty = key.get("kty")
    crv = key.get("crv") if kty != "RSA" else None
    return _DEFAULT_ALGORITHMS.get((kty, crv))


def thumbprint(key: jwk.JWK) -> str:
    """RFC 7638 SHA-256 thumbprint, the kid used to index provisioners."""
    return key.thumbprint()


class SigningKey(ABC):
    """
    Anything that can sign a byte string and name its JWS algorithm.

    Token issuance only talks to this interface, so HSM or KMS backed keys
    can be dropped in next to the JWK implementation.
    """

    @property
    @abstractmethod
    def algorithm(self) -> str:
        """JWS "alg" value for signatures produced by this key."""
        pass

    @property
    @abstractmethod
    def key_id(self) -> str:
        """Key identifier placed in the token header."""
        pass

    @property
    @abstractmethod
    def usable(self) -> bool:
        """Whether sign() can be called."""
        pass

    @abstractmethod
    def sign(self, data: bytes) -> bytes:
        """Sign data and return the raw JWS signature bytes."""
        pass

    @abstractmethod
    def export_public(self) -> str:
        """Public half of the key as a JWK JSON string."""
        pass

    def release(self) -> None:
        """Drop private key material. Further signing must fail."""
        pass


class JWKSigningKey(SigningKey):
    """
    SigningKey backed by a jwcrypto JWK.

    Example:
        >>> key = JWKSigningKey(generate_key())
        >>> key.algorithm
        'ES256'
        >>> signature = key.sign(b"header.payload")
    """

    def __init__(self, key: jwk.JWK):
        self._key: Optional[jwk.JWK] = key

    @property
    def algorithm(self) -> str:
        alg = select_algorithm(self._key) if self._key is not None else None
        if alg is None:
            raise SigningUnavailableError("Provisioner key type cannot be used for signing")
        return alg

    @property
    def key_id(self) -> str:
        if self._key is None:
            raise SigningUnavailableError()
        return self._key.get("kid") or thumbprint(self._key)

    @property
    def usable(self) -> bool:
        if self._key is None or select_algorithm(self._key) is None:
            return False
        try:
            return bool(self._key.has_private)
        except (JWException, KeyError, ValueError):
            return False

    def sign(self, data: bytes) -> bytes:
        if not self.usable:
            raise SigningUnavailableError()
        try:
            return JWA.signing_alg(self.algorithm).sign(self._key, data)
        except (JWException, ValueError, TypeError) as e:
            raise SigningUnavailableError(f"Signing failed: {e}") from e

    def export_public(self) -> str:
        if self._key is None:
            raise SigningUnavailableError()
        return self._key.export_public()

    def release(self) -> None:
        """Strip private members from the wrapped JWK, then drop it."""
        key, self._key = self._key, None
        if key is None:
            return
        # del (not pop) so jwcrypto also drops its cached cryptography key objects
        for name in _PRIVATE_MEMBERS.get(key.get("kty"), ()):
            if name in key:
                del key[name]

    def __repr__(self) -> str:
        state = "released" if self._key is None else self._key.get("kty")
        return f"JWKSigningKey({state})"


def decrypt_key(encrypted_key: str, password: Password) -> jwk.JWK:
    """
    Unwrap a password-protected JWK.

    Args:
        encrypted_key: JWE (compact or JSON serialization) whose payload is a JWK.
        password: Password the key was wrapped with.

    Returns:
        The decrypted private JWK.

    Raises:
        DecryptionError: On a wrong password or any malformed input. The
            message never says which.
    """
    # Stored keys commonly use p2c=100000, above jwcrypto's built-in cap
    jwa.default_max_pbkdf2_iterations = config.MAX_PBKDF2_ITERATIONS
    try:
        token = jwe.JWE(algs=ALLOWED_KEY_WRAP_ALGORITHMS + ALLOWED_CONTENT_ENCRYPTION)
        token.deserialize(encrypted_key, key=_password_key(password))
        key = jwk.JWK.from_json(token.payload.decode("utf-8"))
    except (JWException, ValueError, TypeError, KeyError, UnicodeDecodeError) as e:
        raise DecryptionError() from e

    if select_algorithm(key) is None or not key.has_private:
        raise DecryptionError()
    return key


def encrypt_key(key: jwk.JWK, password: Password) -> str:
    """
    Wrap a private JWK with a password.

    Returns:
        Compact JWE string, the format stored in the provisioner "encryptedKey".
    """
    if not key.has_private:
        raise ValueError("Only private keys can be encrypted")
    header = {
        "alg": KEY_WRAP_ALGORITHM,
        "enc": CONTENT_ENCRYPTION,
        "cty": "jwk+json",
    }
    token = jwe.JWE(key.export_private().encode("utf-8"), protected=json_encode(header))
    token.add_recipient(_password_key(password))
    return token.serialize(compact=True)


def generate_key(kty: str = "EC", crv: Optional[str] = None, size: int = 2048) -> jwk.JWK:
    """
    Generate a fresh signing key with its thumbprint as kid.

    Args:
        kty: "EC", "OKP" or "RSA".
        crv: Curve for EC/OKP keys (ignored for RSA). Defaults to P-256 for
            EC and Ed25519 for OKP.
        size: Modulus size for RSA keys.

    Raises:
        ValueError: If the key type or curve is unsupported.
    """
    if kty not in ("EC", "OKP", "RSA"):
        raise ValueError(f"Unsupported key type: {kty}")
    if kty != "RSA":
        crv = crv or CURVES[kty][0]
        if crv not in CURVES[kty]:
            raise ValueError(
                f"Unsupported curve {crv} for {kty} keys, expected one of {', '.join(CURVES[kty])}"
            )

    try:
        if kty == "RSA":
            key = jwk.JWK.generate(kty="RSA", size=size)
        else:
            key = jwk.JWK.generate(kty=kty, crv=crv)
    except (JWException, AttributeError, TypeError) as e:
        raise ValueError(f"Cannot generate {kty} key: {e}") from e

    params = json.loads(key.export_private())
    params["kid"] = thumbprint(key)
    params["use"] = "sig"
    alg = select_algorithm(key)
    if alg:
        params["alg"] = alg
    return jwk.JWK(**params)
