"""Test configuration and fixtures."""

import os

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from keyresolver.config import PackagerSettings, get_settings


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Keep PACKAGER_* variables from the developer's shell out of tests."""
    for name in list(os.environ):
        if name.upper().startswith("PACKAGER_"):
            monkeypatch.delenv(name)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def make_settings():
    """Build settings from keyword arguments only."""
    def _make(**overrides) -> PackagerSettings:
        return PackagerSettings(_env_file=None, **overrides)
    return _make


@pytest.fixture(scope="session")
def rsa_private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def rsa_key_path(tmp_path, rsa_private_key):
    """Path to a PEM encoded RSA private key."""
    path = tmp_path / "signing_key.pem"
    path.write_bytes(
        rsa_private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    return str(path)
