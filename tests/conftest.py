"""
Shared pytest fixtures for provisioner tests.
"""

import json
from datetime import timedelta
from pathlib import Path

import pytest
from jwcrypto import jwa, jwe, jwk
from jwcrypto.common import base64url_encode, json_encode

from caprovisioner import (
    JWKSigningKey,
    Provisioner,
    ProvisionerDirectory,
    encrypt_key,
    generate_key,
)

_ROOT_PEM = b"""-----BEGIN CERTIFICATE-----
MIIBfTCCASKgAwIBAgIRAJPUE0MTA+fMz6f6i/XYmTwwCgYIKoZIzj0EAwIwHDEa
MBgGA1UEAxMRU21hbGxzdGVwIFJvb3QgQ0EwHhcNMTgwNzE2MjE1NjQ0WhcNMjgw
-----END CERTIFICATE-----
"""


_PASSWORD = b"password"

# PBES2 iteration cap jwcrypto ships with
_JWCRYPTO_PBKDF2_LIMIT = 16384


def _make_record(name: str, key: jwk.JWK, password: bytes = _PASSWORD) -> dict:
    return {
        "type": "JWK",
        "name": name,
        "key": json.loads(key.export_public()),
        "encryptedKey": encrypt_key(key, password),
    }


def _write_store(root: Path, entries: list) -> Path:
    config_dir = root / "config"
    config_dir.mkdir(parents=True, exist_ok=True)
    path = config_dir / "ca.json"
    path.write_text(json.dumps({"authority": {"provisioners": entries}}, indent=2))
    return path


@pytest.fixture
def password() -> bytes:
    """Password of the "mariano" and unnamed provisioner keys."""
    return _PASSWORD


@pytest.fixture
def ca_url() -> str:
    return "https://127.0.0.1:9000"


@pytest.fixture
def root_pem() -> bytes:
    """Content of the ca_root file."""
    return _ROOT_PEM


@pytest.fixture
def make_record():
    """Store entry for a key, as `caprovisioner init` prints it."""
    return _make_record


@pytest.fixture
def write_store():
    """Write a ca.json with the given provisioner entries under a root."""
    return _write_store


@pytest.fixture
def wrap_key(monkeypatch):
    """
    Wrap a key with an explicit PBES2 iteration count, the way step does.

    jwcrypto's iteration cap is put back to its stock value afterwards.
    """
    def wrap(key: jwk.JWK, password: bytes, p2c: int) -> str:
        monkeypatch.setattr(jwa, "default_max_pbkdf2_iterations", p2c)
        header = {
            "alg": "PBES2-HS256+A128KW",
            "enc": "A128GCM",
            "cty": "jwk+json",
            "p2c": p2c,
        }
        token = jwe.JWE(key.export_private().encode("utf-8"), protected=json_encode(header))
        token.add_recipient(jwk.JWK(kty="oct", k=base64url_encode(password)))
        encrypted = token.serialize(compact=True)
        monkeypatch.setattr(jwa, "default_max_pbkdf2_iterations", _JWCRYPTO_PBKDF2_LIMIT)
        return encrypted
    return wrap


@pytest.fixture
def provisioner_key() -> jwk.JWK:
    """The EC P-256 key of the "mariano" provisioner."""
    return generate_key()


@pytest.fixture
def anonymous_key() -> jwk.JWK:
    """Key of a provisioner stored without a name."""
    return generate_key(kty="OKP", crv="Ed25519")


@pytest.fixture
def ca_root(tmp_path: Path) -> str:
    """A root certificate file."""
    path = tmp_path / "certs" / "root_ca.crt"
    path.parent.mkdir(parents=True)
    path.write_bytes(_ROOT_PEM)
    return str(path)


@pytest.fixture
def step_path(tmp_path: Path, provisioner_key, anonymous_key) -> Path:
    """A store root holding "mariano", an unnamed provisioner and "other"."""
    root = tmp_path / "step"
    _write_store(
        root,
        [
            _make_record("mariano", provisioner_key),
            _make_record("", anonymous_key),
            _make_record("other", generate_key(), password=b"other-password"),
        ],
    )
    return root


@pytest.fixture
def directory(step_path: Path) -> ProvisionerDirectory:
    """Directory over the test store."""
    return ProvisionerDirectory(step_path)


@pytest.fixture
def provisioner(provisioner_key, ca_root, ca_url) -> Provisioner:
    """A Provisioner built directly from the decrypted test key."""
    return Provisioner(
        name="mariano",
        kid=provisioner_key["kid"],
        ca_url=ca_url,
        ca_root=ca_root,
        signing_key=JWKSigningKey(provisioner_key),
        token_lifetime=timedelta(minutes=5),
    )
