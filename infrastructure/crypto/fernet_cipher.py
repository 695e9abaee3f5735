from __future__ import annotations

import base64
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from domain.errors import DecryptionError
from domain.repositories import KeyProvider


class StaticKeyProvider(KeyProvider):
    """
    Derives the record key from a configured secret with scrypt.

    The key is fixed for the lifetime of the deployment; a managed-secret
    provider can be substituted wherever a `KeyProvider` is accepted.
    """

    def __init__(self, secret: str, salt: str = "rally-reader") -> None:
        if not secret:
            raise ValueError("Encryption secret must not be empty.")
        self._secret = secret.encode("utf-8")
        self._salt = salt.encode("utf-8")
        self._key: Optional[bytes] = None

    def get_key(self) -> bytes:
        if self._key is None:
            kdf = Scrypt(salt=self._salt, length=32, n=2**14, r=8, p=1)
            self._key = base64.urlsafe_b64encode(kdf.derive(self._secret))
        return self._key


class FernetCipher:
    """
    Symmetric encryption of serialized account records.

    Fernet generates a fresh random IV for every call and embeds it at the
    front of the token, alongside an HMAC, so ciphertexts are
    self-describing and tampering is detected on decrypt.
    """

    def __init__(self, key_provider: KeyProvider) -> None:
        self._fernet = Fernet(key_provider.get_key())

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        try:
            return self._fernet.decrypt(ciphertext.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError) as exc:
            raise DecryptionError(
                "Payload could not be decrypted (corrupted data or wrong key).",
            ) from exc
