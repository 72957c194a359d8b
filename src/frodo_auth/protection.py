"""Encryption of secrets kept under ``~/.frodo``.

The token cache and the connection profiles both hold secrets and share one
envelope format, a JSON document::

    {"enc": "AESGCM", "kdf": "PBKDF2-HMAC-SHA256", "iter": 1000,
     "salt": "<b64>", "nonce": "<b64>", "ct": "<b64>"}

The token cache derives its passphrase from the credential that obtained
each token. Connection profiles use a random :class:`MasterKey` stored in
``~/.frodo/masterkey.key`` (or given by ``FRODO_MASTER_KEY``), created with
``0o600`` permissions on first use.
"""

from __future__ import annotations

import base64
import json
import os
from pathlib import Path
from typing import Optional

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from frodo_auth.config import FRODO_MASTER_KEY_KEY, atomic_write
from frodo_auth.output import get_output


def derive_key(passphrase: str, salt: bytes, iterations: int) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(passphrase.encode("utf-8"))


def encrypt(plaintext: str, passphrase: str, iterations: int) -> str:
    """Encrypt *plaintext* into a self-describing JSON envelope."""
    salt = os.urandom(16)
    nonce = os.urandom(12)
    key = derive_key(passphrase, salt, iterations)
    ct = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
    return json.dumps(
        {
            "enc": "AESGCM",
            "kdf": "PBKDF2-HMAC-SHA256",
            "iter": iterations,
            "salt": base64.b64encode(salt).decode(),
            "nonce": base64.b64encode(nonce).decode(),
            "ct": base64.b64encode(ct).decode(),
        }
    )


def decrypt(envelope: str, passphrase: str) -> str:
    """Reverse :func:`encrypt`.

    Raises:
        ValueError: If the envelope is malformed.
        cryptography.exceptions.InvalidTag: If the passphrase is wrong or
            the ciphertext was tampered with.
    """
    obj = json.loads(envelope)
    if not isinstance(obj, dict) or obj.get("enc") != "AESGCM":
        raise ValueError("Unsupported encrypted token format")
    salt = base64.b64decode(obj["salt"])
    nonce = base64.b64decode(obj["nonce"])
    ct = base64.b64decode(obj["ct"])
    key = derive_key(passphrase, salt, int(obj["iter"]))
    return AESGCM(key).decrypt(nonce, ct, None).decode("utf-8")


class MasterKey:
    """The key protecting secrets in connection profiles.

    ``FRODO_MASTER_KEY`` wins over the key file. Without either, a random
    256-bit key is generated and written to *path*.

    Args:
        path: Key file location.
    """

    kdf_iterations = 100_000

    def __init__(self, path: Path) -> None:
        self._path = path
        self._key: Optional[str] = None

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> str:
        """Return the master key, creating the key file if needed.

        Raises:
            OSError: If the key file cannot be read or written.
        """
        if self._key is None:
            self._key = os.environ.get(FRODO_MASTER_KEY_KEY) or self._read_or_create()
        return self._key

    def _read_or_create(self) -> str:
        if self._path.is_file():
            key = self._path.read_text(encoding="utf-8").strip()
            if key:
                return key
        get_output().debug(f"Creating master key {self._path}")
        key = base64.b64encode(os.urandom(32)).decode()
        atomic_write(self._path, key, mode=0o600)
        return key

    def encrypt(self, plaintext: str) -> str:
        return encrypt(plaintext, self.load(), self.kdf_iterations)

    def decrypt(self, envelope: str) -> str:
        return decrypt(envelope, self.load())
