"""
Password encryption helpers for the `encrypted` authentication mode.

The key lives in an external file holding one Fernet key. Fernet tokens are
authenticated, so decrypting with the wrong key fails instead of returning
garbage.
"""

from __future__ import annotations

from pathlib import Path
from typing import Union

from cryptography.fernet import Fernet, InvalidToken

from .errors import DecryptionFailed, SecretUnavailable

PathLike = Union[str, Path]


def read_secret(path: PathLike) -> bytes:
    """Read the symmetric key from ``path``."""
    try:
        raw = Path(path).read_bytes().strip()
    except OSError as e:
        raise SecretUnavailable(f"cannot read encryption secret {path}: {e}") from e
    if not raw:
        raise SecretUnavailable(f"encryption secret file {path} is empty")
    return raw


def _fernet(key: bytes) -> Fernet:
    try:
        return Fernet(key)
    except (ValueError, TypeError) as e:
        raise SecretUnavailable(f"encryption secret is not a valid key: {e}") from e


def generate_key(path: PathLike) -> Path:
    """Write a fresh key to ``path`` (owner read/write only)."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_bytes(Fernet.generate_key() + b"\n")
    p.chmod(0o600)
    return p


def encrypt_password(plaintext: str, secret_path: PathLike) -> str:
    return _fernet(read_secret(secret_path)).encrypt(plaintext.encode()).decode()


def decrypt_password(ciphertext: str, secret_path: PathLike) -> str:
    f = _fernet(read_secret(secret_path))
    try:
        return f.decrypt(ciphertext.strip().encode()).decode()
    except InvalidToken:
        raise DecryptionFailed("password ciphertext does not match the configured key") from None
    except UnicodeDecodeError as e:
        raise DecryptionFailed(f"decrypted password is not valid UTF-8: {e}") from e
