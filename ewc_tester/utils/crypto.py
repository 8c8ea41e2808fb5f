"""
Crypto utilities — bcrypt password hashing & AES-256-CBC secret encryption.

Password hashing:
  bcrypt ($2b$) hashes for user accounts.

Symmetric encryption (Connected App secrets, refresh tokens, EWC API keys):
  `encrypt_secret` / `decrypt_secret` use AES-256-CBC with PKCS7 padding and
  a fresh random 16-byte IV per call.  The stored token is

      hex(iv) + ":" + hex(ciphertext)

  which fits in a TEXT column.

  Key derivation: ENCRYPTION_KEY (UTF-8) right-padded with "0" and cut to
  32 bytes.  There is no key versioning; rotating the key makes every
  stored secret unreadable.
"""

import os

import bcrypt
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from flask import current_app, has_app_context

_KEY_LENGTH = 32
_IV_LENGTH = 16
_SEPARATOR = ":"


class CryptoFormatError(ValueError):
    """Raised when a stored token is not a valid ``iv:ciphertext`` pair."""


def hash_password(plain_password: str) -> str:
    """Hash a plain-text password with bcrypt (12 rounds)."""
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(plain_password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify a plain-text password against its bcrypt hash."""
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            password_hash.encode("utf-8"),
        )
    except ValueError:
        # Not a bcrypt hash
        return False


# ── AES-256-CBC symmetric encryption ─────────────────────────────────────────


def _get_key() -> bytes:
    """Return the 32-byte AES key derived from ENCRYPTION_KEY.

    Reads the Flask config when an app context is active, otherwise the
    environment.  Raises RuntimeError if neither provides a key, so secrets
    are never silently stored with an empty key.
    """
    raw_key = None
    if has_app_context():
        raw_key = current_app.config.get("ENCRYPTION_KEY")
    if not raw_key:
        raw_key = os.getenv("ENCRYPTION_KEY")
    if not raw_key:
        raise RuntimeError("ENCRYPTION_KEY is not configured")
    return raw_key.encode("utf-8").ljust(_KEY_LENGTH, b"0")[:_KEY_LENGTH]


def encrypt_secret(plaintext: str) -> str:
    """Encrypt a plaintext secret and return an ``iv:ciphertext`` hex token.

    Args:
        plaintext: The secret to encrypt (client secret, refresh token, API key).

    Returns:
        Lowercase hex IV and ciphertext joined by ":".

    Raises:
        RuntimeError: If ENCRYPTION_KEY is not configured.
    """
    iv = os.urandom(_IV_LENGTH)
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
    encryptor = Cipher(algorithms.AES(_get_key()), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()
    return iv.hex() + _SEPARATOR + ciphertext.hex()


def decrypt_secret(token: str) -> str:
    """Decrypt a token produced by :func:`encrypt_secret`.

    Raises:
        RuntimeError: If ENCRYPTION_KEY is not configured.
        CryptoFormatError: If the token is malformed, was encrypted with a
            different key, or does not decode as UTF-8.
    """
    if not token or _SEPARATOR not in token:
        raise CryptoFormatError("Encrypted value must have the form iv:ciphertext")

    iv_hex, ct_hex = token.split(_SEPARATOR, 1)
    try:
        iv = bytes.fromhex(iv_hex)
        ciphertext = bytes.fromhex(ct_hex)
    except ValueError as exc:
        raise CryptoFormatError("Encrypted value is not valid hex") from exc

    if len(iv) != _IV_LENGTH:
        raise CryptoFormatError("Encrypted value has an invalid IV")
    if not ciphertext or len(ciphertext) % _IV_LENGTH:
        raise CryptoFormatError("Encrypted value has an invalid ciphertext length")

    decryptor = Cipher(algorithms.AES(_get_key()), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    try:
        plaintext = unpadder.update(padded) + unpadder.finalize()
        return plaintext.decode("utf-8")
    except ValueError as exc:
        # Bad padding (wrong key / tampered) or invalid UTF-8
        raise CryptoFormatError("Encrypted value could not be decrypted") from exc
