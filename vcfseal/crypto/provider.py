"""
Crypto Provider Module

Opaque encrypt/decrypt pair used by the transform engines, plus the
bundled AES-256-GCM implementation.

Token format (AESGCMProvider):
    ENC1_<base64url(nonce || ciphertext || tag), no padding>

The alphabet is [A-Za-z0-9_-], so a token never contains a VCF
delimiter (tab, colon, comma, semicolon, equals, angle brackets,
whitespace) and never lexes as an Integer, Float or Character value.

Key derivation:
- PBKDF2-HMAC-SHA256 (>= 100,000 iterations)
- Argon2id raw hash (argon2-cffi)
"""

import base64
import binascii
import secrets
from abc import ABC, abstractmethod
from typing import Optional

from argon2.low_level import Type, hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..errors import CryptoProviderError


# Constants
KEY_SIZE = 32               # 256-bit keys
NONCE_SIZE = 12             # 96-bit nonce for GCM
TAG_SIZE = 16               # 128-bit GCM tag
SALT_SIZE = 16              # 128-bit salt
TOKEN_PREFIX = "ENC1_"

# Characters a ciphertext token must never contain
RESERVED_TOKEN_CHARS = frozenset("\t\n\r:,;<>= ")

# PBKDF2 configuration
PBKDF2_ITERATIONS = 100_000  # Minimum
PBKDF2_ALGORITHM = hashes.SHA256()

# Argon2id configuration
# - time_cost: number of iterations
# - memory_cost: memory usage in KiB
# - parallelism: number of parallel lanes
ARGON2_CONFIG = {
    'time_cost': 3,
    'memory_cost': 65536,    # 64 MiB
    'parallelism': 4,
    'hash_len': KEY_SIZE,
    'type': Type.ID,
}


def generate_salt() -> bytes:
    """Generate a random salt for key derivation."""
    return secrets.token_bytes(SALT_SIZE)


def derive_key_pbkdf2(passphrase: str, salt: bytes,
                      iterations: int = PBKDF2_ITERATIONS) -> bytes:
    """
    Derive a 256-bit key from a passphrase using PBKDF2.

    Args:
        passphrase: Secret passphrase
        salt: Random salt
        iterations: Number of iterations (>= 100,000)

    Returns:
        32-byte derived key
    """
    kdf = PBKDF2HMAC(
        algorithm=PBKDF2_ALGORITHM,
        length=KEY_SIZE,
        salt=salt,
        iterations=iterations,
        backend=default_backend()
    )
    return kdf.derive(passphrase.encode('utf-8'))


def derive_key_argon2(passphrase: str, salt: bytes, **kwargs) -> bytes:
    """
    Derive a 256-bit key from a passphrase using Argon2id.

    Args:
        passphrase: Secret passphrase
        salt: Random salt (at least 8 bytes)
        **kwargs: Override default Argon2 parameters

    Returns:
        32-byte derived key
    """
    config = ARGON2_CONFIG.copy()
    config.update(kwargs)
    return hash_secret_raw(secret=passphrase.encode('utf-8'), salt=salt, **config)


def is_grammar_safe(token: str) -> bool:
    """True when a token can sit in a sample column without breaking it."""
    if not token or token == ".":
        return False
    if any(ch in RESERVED_TOKEN_CHARS or ch.isspace() for ch in token):
        return False
    return token.isprintable()


class CryptoProvider(ABC):
    """
    Interface the transform engines encrypt and decrypt through.

    Implementations raise CryptoProviderError on failure.
    """

    @abstractmethod
    def encrypt(self, plaintext: bytes) -> str:
        """Encrypt plaintext into a grammar-safe token."""

    @abstractmethod
    def decrypt(self, token: str) -> bytes:
        """Decrypt a token produced by encrypt()."""

    def is_token(self, raw: str) -> bool:
        """Cheap shape check; True when raw could be one of our tokens."""
        return is_grammar_safe(raw)


class AESGCMProvider(CryptoProvider):
    """
    AES-256-GCM provider with a fresh random nonce per value.

    Example:
        >>> provider = AESGCMProvider.generate()
        >>> token = provider.encrypt(b"0.03,0.97,0")
        >>> provider.decrypt(token)
        b'0.03,0.97,0'
    """

    def __init__(self, key: bytes, associated_data: Optional[bytes] = None):
        """
        Initialize with an encryption key.

        Args:
            key: 256-bit (32-byte) key
            associated_data: Optional data authenticated with every value
                (e.g. a file or cohort identifier)
        """
        if len(key) != KEY_SIZE:
            raise ValueError(f"Key must be {KEY_SIZE} bytes")
        self._aesgcm = AESGCM(key)
        self._associated_data = associated_data

    @classmethod
    def generate(cls, associated_data: Optional[bytes] = None) -> 'AESGCMProvider':
        """Create a provider with a random key."""
        return cls(AESGCM.generate_key(bit_length=KEY_SIZE * 8), associated_data)

    @classmethod
    def from_passphrase(cls, passphrase: str, salt: bytes, kdf: str = "argon2id",
                        associated_data: Optional[bytes] = None,
                        **kdf_options) -> 'AESGCMProvider':
        """
        Create a provider from a passphrase.

        Args:
            passphrase: Secret passphrase
            salt: Salt stored alongside the encrypted file
            kdf: "argon2id" or "pbkdf2"
            associated_data: Optional authenticated data
            **kdf_options: Passed to the key derivation function
        """
        if kdf == "argon2id":
            key = derive_key_argon2(passphrase, salt, **kdf_options)
        elif kdf == "pbkdf2":
            key = derive_key_pbkdf2(passphrase, salt, **kdf_options)
        else:
            raise ValueError(f"Unknown key derivation function `{kdf}`")
        return cls(key, associated_data)

    def encrypt(self, plaintext: bytes) -> str:
        nonce = secrets.token_bytes(NONCE_SIZE)
        ciphertext_with_tag = self._aesgcm.encrypt(nonce, plaintext, self._associated_data)
        encoded = base64.urlsafe_b64encode(nonce + ciphertext_with_tag).decode('ascii')
        return TOKEN_PREFIX + encoded.rstrip("=")

    def decrypt(self, token: str) -> bytes:
        if not token.startswith(TOKEN_PREFIX):
            raise CryptoProviderError("value is not an ENC1 token")

        encoded = token[len(TOKEN_PREFIX):]
        try:
            payload = base64.urlsafe_b64decode(encoded + "=" * (-len(encoded) % 4))
        except (binascii.Error, ValueError) as e:
            raise CryptoProviderError("token is not valid base64") from e

        if len(payload) < NONCE_SIZE + TAG_SIZE:
            raise CryptoProviderError("token is too short")

        nonce = payload[:NONCE_SIZE]
        try:
            return self._aesgcm.decrypt(nonce, payload[NONCE_SIZE:], self._associated_data)
        except InvalidTag as e:
            raise CryptoProviderError("authentication failed (wrong key or tampered token)") from e

    def is_token(self, raw: str) -> bool:
        return raw.startswith(TOKEN_PREFIX) and is_grammar_safe(raw)
