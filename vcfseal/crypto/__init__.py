# Crypto Provider Module
"""
Crypto provider interface and implementations:
- CryptoProvider abstract interface (encrypt -> token, decrypt -> bytes)
- AES-256-GCM provider with grammar-safe tokens
- PBKDF2 and Argon2id key derivation
"""

from .provider import (
    AESGCMProvider,
    CryptoProvider,
    PBKDF2_ITERATIONS,
    TOKEN_PREFIX,
    derive_key_argon2,
    derive_key_pbkdf2,
    generate_salt,
    is_grammar_safe,
)

__all__ = [
    'CryptoProvider',
    'AESGCMProvider',
    'derive_key_pbkdf2',
    'derive_key_argon2',
    'generate_salt',
    'is_grammar_safe',
    'TOKEN_PREFIX',
    'PBKDF2_ITERATIONS',
]
