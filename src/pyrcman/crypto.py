"""Password based authenticated encryption (Scrypt + AES-256-GCM)."""
from __future__ import annotations

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from .errors import IncorrectPasswordError

SALT_SIZE = 16
NONCE_SIZE = 12
KDF_PARAMS = {"n": 2 ** 15, "r": 8, "p": 1}


def new_salt() -> bytes:
    return os.urandom(SALT_SIZE)


def derive_key(password: str | bytes, salt: bytes, *, n: int = KDF_PARAMS["n"],
               r: int = KDF_PARAMS["r"], p: int = KDF_PARAMS["p"]) -> bytes:
    secret = password.encode() if isinstance(password, str) else password
    kdf = Scrypt(salt=salt, length=32, n=n, r=r, p=p)
    return kdf.derive(secret)


def seal(key: bytes, plaintext: bytes, aad: bytes | None = None) -> bytes:
    """Encrypt *plaintext*; the result is ``nonce || ciphertext``."""
    nonce = os.urandom(NONCE_SIZE)
    return nonce + AESGCM(key).encrypt(nonce, plaintext, aad)


def unseal(key: bytes, blob: bytes, aad: bytes | None = None) -> bytes:
    nonce, cipher = blob[:NONCE_SIZE], blob[NONCE_SIZE:]
    try:
        return AESGCM(key).decrypt(nonce, cipher, aad)
    except (InvalidTag, ValueError) as exc:
        raise IncorrectPasswordError("authentication failed: wrong password or corrupted data") from exc
