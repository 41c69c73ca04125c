"""Key server request signing.

Key servers authenticate packagers by a signature over the request body:
- AES: AES-CBC (PKCS#7 padding) encryption of the SHA-1 digest of the message
- RSA: RSASSA-PSS with SHA-1 and a 20 byte salt

The signer is chosen from configuration by resolve_signer(). AES takes
precedence over RSA when both are configured.
"""

import hashlib
from abc import ABC, abstractmethod

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, padding, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric import padding as asym_padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from keyresolver.config import PackagerSettings
from keyresolver.core.keys.base import (
    BackendConstructionError,
    KeyMaterialReadError,
    MalformedInputError,
    hex_to_bytes,
)
from keyresolver.core.logging import get_logger

logger = get_logger(__name__)

AES_KEY_SIZES = (16, 24, 32)
AES_IV_SIZE = 16
RSA_PSS_SALT_LENGTH = 20


class SignerError(BackendConstructionError):
    """A signer could not be created from the supplied key material."""
    pass


class RequestSigner(ABC):
    """Signs key server requests on behalf of a named signer."""

    def __init__(self, signer_name: str):
        self.signer_name = signer_name

    @abstractmethod
    def generate_signature(self, message: bytes) -> bytes:
        """Return the signature for a request message."""
        pass


class AesRequestSigner(RequestSigner):
    """AES-CBC request signer."""

    def __init__(self, signer_name: str, aes_key: bytes, iv: bytes):
        super().__init__(signer_name)
        self._aes_key = aes_key
        self._iv = iv

    @classmethod
    def create_signer(
        cls,
        signer_name: str,
        aes_key_hex: str,
        iv_hex: str,
    ) -> "AesRequestSigner":
        """Create an AES signer from hex encoded key and IV.

        Raises:
            SignerError: If the key or IV is not valid for AES-CBC
        """
        try:
            aes_key = hex_to_bytes(aes_key_hex, "aes_signing_key")
            iv = hex_to_bytes(iv_hex, "aes_signing_iv")
        except MalformedInputError as e:
            raise SignerError(str(e))

        if len(aes_key) not in AES_KEY_SIZES:
            raise SignerError(
                f"AES signing key must be 16, 24 or 32 bytes, got {len(aes_key)}"
            )
        if len(iv) != AES_IV_SIZE:
            raise SignerError(f"AES signing IV must be {AES_IV_SIZE} bytes, got {len(iv)}")

        return cls(signer_name, aes_key, iv)

    def generate_signature(self, message: bytes) -> bytes:
        digest = hashlib.sha1(message).digest()

        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(digest) + padder.finalize()

        encryptor = Cipher(algorithms.AES(self._aes_key), modes.CBC(self._iv)).encryptor()
        return encryptor.update(padded) + encryptor.finalize()


class RsaRequestSigner(RequestSigner):
    """RSASSA-PSS request signer."""

    def __init__(self, signer_name: str, private_key: rsa.RSAPrivateKey):
        super().__init__(signer_name)
        self._private_key = private_key

    @classmethod
    def create_signer(
        cls,
        signer_name: str,
        private_key_material: bytes,
    ) -> "RsaRequestSigner":
        """Create an RSA signer from PEM or DER private key material.

        Raises:
            SignerError: If the material is not an unencrypted RSA private key
        """
        if private_key_material.lstrip().startswith(b"-----BEGIN"):
            loader = serialization.load_pem_private_key
        else:
            loader = serialization.load_der_private_key

        try:
            private_key = loader(private_key_material, password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise SignerError(f"Unable to load RSA private key: {e}")

        if not isinstance(private_key, rsa.RSAPrivateKey):
            raise SignerError(
                f"Expected an RSA private key, got {type(private_key).__name__}"
            )

        return cls(signer_name, private_key)

    def generate_signature(self, message: bytes) -> bytes:
        return self._private_key.sign(
            message,
            asym_padding.PSS(
                mgf=asym_padding.MGF1(hashes.SHA1()),
                salt_length=RSA_PSS_SALT_LENGTH,
            ),
            hashes.SHA1(),
        )


def resolve_signer(settings: PackagerSettings) -> RequestSigner | None:
    """Create the request signer selected by configuration.

    Returns:
        An AES signer when aes_signing_key is set, else an RSA signer when
        rsa_signing_key_path is set, else None (signing not configured)

    Raises:
        SignerError: If the configured key material is rejected
        KeyMaterialReadError: If the RSA key file cannot be read
    """
    if settings.aes_signing_key:
        try:
            return AesRequestSigner.create_signer(
                settings.signer,
                settings.aes_signing_key,
                settings.aes_signing_iv,
            )
        except SignerError as e:
            logger.error(
                "Cannot create an AES signer object",
                aes_signing_key=settings.aes_signing_key,
                aes_signing_iv=settings.aes_signing_iv,
                error=str(e),
            )
            raise

    if settings.rsa_signing_key_path:
        path = settings.rsa_signing_key_path
        try:
            with open(path, "rb") as f:
                private_key_material = f.read()
        except OSError as e:
            logger.error("Failed to read RSA signing key", path=path, error=str(e))
            raise KeyMaterialReadError(f"Failed to read from '{path}': {e}")

        try:
            return RsaRequestSigner.create_signer(settings.signer, private_key_material)
        except SignerError as e:
            logger.error("Cannot create a RSA signer object", path=path, error=str(e))
            raise SignerError(f"Cannot create a RSA signer object from '{path}': {e}")

    return None
