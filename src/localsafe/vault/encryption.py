# LocalSafe: Vault - Encryption Suite
#
# Passphrase → encryption key (PBKDF2-HMAC-SHA512)
# Secret payload encryption (AES-256-GCM)
# Fresh salt + nonce on every encrypt call

import base64
import binascii
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .errors import DecryptionFailure
from .models import EncryptedPayload

DEFAULT_ALGORITHM = "aes-256-gcm"
DEFAULT_ITERATIONS = 210_000
DEFAULT_KEY_SIZE = 32  # 256 bits for AES-256
MAX_ITERATIONS = 10_000_000

SUPPORTED_ALGORITHMS = {DEFAULT_ALGORITHM: DEFAULT_KEY_SIZE}


def derive_key(passphrase: str, salt: bytes, iterations: int = DEFAULT_ITERATIONS,
               key_size: int = DEFAULT_KEY_SIZE) -> bytes:
    """
    Derive an encryption key from a passphrase using PBKDF2-HMAC-SHA512.

    Args:
        passphrase: User passphrase
        salt: Random salt stored alongside the ciphertext
        iterations: PBKDF2 work factor
        key_size: Output length in bytes

    Returns:
        Derived key bytes
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA512(),
        length=key_size,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(passphrase.encode("utf-8"))


class EncryptionService:
    """
    Encrypts and decrypts entry secrets under a passphrase.

    Flow:
    1. A fresh 16-byte salt and 12-byte nonce are drawn per encryption
    2. PBKDF2 derives the key from passphrase + salt
    3. AES-GCM encrypts the plaintext and produces a 16-byte auth tag
    4. Every binary field is base64-encoded into an EncryptedPayload

    Decryption re-derives the key from the stored salt. A wrong passphrase
    or any modified field fails tag verification and raises
    DecryptionFailure without returning partial output.
    """

    SALT_LENGTH = 16
    NONCE_LENGTH = 12  # 96-bit nonce for GCM
    TAG_LENGTH = 16

    def __init__(
        self,
        algorithm: str = DEFAULT_ALGORITHM,
        iterations: int = DEFAULT_ITERATIONS,
        key_size: int = DEFAULT_KEY_SIZE,
    ):
        expected_size = SUPPORTED_ALGORITHMS.get(algorithm.lower())
        if expected_size is None:
            raise ValueError(f"Unsupported cipher algorithm: {algorithm}")
        if key_size != expected_size:
            raise ValueError(f"{algorithm} requires a {expected_size}-byte key, got {key_size}")
        if not 1 <= iterations <= MAX_ITERATIONS:
            raise ValueError(f"iterations must be between 1 and {MAX_ITERATIONS}")

        self.algorithm = algorithm.lower()
        self.iterations = iterations
        self.key_size = key_size

    def derive_key(self, passphrase: str, salt: bytes) -> bytes:
        return derive_key(passphrase, salt, self.iterations, self.key_size)

    def encrypt(self, passphrase: str, plaintext: str) -> EncryptedPayload:
        """Encrypt ``plaintext`` under ``passphrase``. Output differs on every call."""
        salt = os.urandom(self.SALT_LENGTH)
        nonce = os.urandom(self.NONCE_LENGTH)
        key = self.derive_key(passphrase, salt)

        sealed = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-self.TAG_LENGTH], sealed[-self.TAG_LENGTH:]

        return EncryptedPayload(
            algorithm=self.algorithm,
            salt=self.encode_for_storage(salt),
            iv=self.encode_for_storage(nonce),
            auth_tag=self.encode_for_storage(tag),
            ciphertext=self.encode_for_storage(ciphertext),
            iterations=self.iterations,
        )

    def decrypt(self, passphrase: str, payload: Optional[EncryptedPayload]) -> str:
        """
        Decrypt a payload produced by ``encrypt``.

        Raises:
            DecryptionFailure: Wrong passphrase, tampered field, or a payload
                that is not decodable at all
        """
        if payload is None:
            raise DecryptionFailure("Entry has no encrypted payload")
        if payload.algorithm and payload.algorithm.lower() != self.algorithm:
            raise DecryptionFailure(f"Payload algorithm '{payload.algorithm}' is not supported")

        try:
            salt = self.decode_from_storage(payload.salt)
            nonce = self.decode_from_storage(payload.iv)
            tag = self.decode_from_storage(payload.auth_tag)
            ciphertext = self.decode_from_storage(payload.ciphertext)
        except (binascii.Error, ValueError) as exc:
            raise DecryptionFailure("Encrypted payload is not valid base64") from exc

        if len(tag) != self.TAG_LENGTH:
            raise DecryptionFailure("Authentication tag has the wrong length")

        # Derive with the count the payload was sealed with, not the current setting
        iterations = DEFAULT_ITERATIONS if payload.iterations is None else payload.iterations
        if not 1 <= iterations <= MAX_ITERATIONS:
            raise DecryptionFailure(f"Payload iteration count {iterations} is out of range")
        key = derive_key(passphrase, salt, iterations, self.key_size)
        try:
            plaintext = AESGCM(key).decrypt(nonce, ciphertext + tag, None)
        except (InvalidTag, ValueError) as exc:
            # ValueError covers nonce lengths AES-GCM refuses outright
            raise DecryptionFailure("Unable to decrypt entry. Verify the passphrase.") from exc

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecryptionFailure("Decrypted payload is not UTF-8") from exc

    @staticmethod
    def encode_for_storage(data: bytes) -> str:
        return base64.b64encode(data).decode("ascii")

    @staticmethod
    def decode_from_storage(data: str) -> bytes:
        return base64.b64decode(data.encode("ascii"), validate=True)
