"""Password based authenticated encryption for artifacts kept in the git store.

Envelope layout:

    b"BLMP" | version (1 byte) | salt (16) | nonce (24) | verifier (16) | ciphertext + Poly1305 tag

Argon2id (interactive limits) derives 64 bytes from the password. The first 32
are the XSalsa20-Poly1305 key (nacl.secret.SecretBox). The BLAKE2b digest of the
other 32 is stored as the verifier, so a wrong password is told apart from a
truncated or tampered payload.
"""

import hmac

from nacl import encoding, exceptions, pwhash, secret, utils
from nacl.hash import blake2b

from blimp.src.errors import DecryptionFailedError, InvalidEncryptedDataError

MAGIC = b"BLMP"
VERSION = 1
SALT_SIZE = pwhash.argon2id.SALTBYTES
NONCE_SIZE = secret.SecretBox.NONCE_SIZE
VERIFIER_SIZE = 16
HEADER_SIZE = len(MAGIC) + 1 + SALT_SIZE + NONCE_SIZE + VERIFIER_SIZE
MIN_SIZE = HEADER_SIZE + secret.SecretBox.MACBYTES


class FileEncrypter:
    def __init__(
        self,
        opslimit: int = pwhash.argon2id.OPSLIMIT_INTERACTIVE,
        memlimit: int = pwhash.argon2id.MEMLIMIT_INTERACTIVE,
    ):
        self.opslimit = opslimit
        self.memlimit = memlimit

    def _derive_keys(self, password: str, salt: bytes):
        """Return the SecretBox key and the password verifier for this salt"""
        if not password:
            raise ValueError("Password must not be empty")
        material = pwhash.argon2id.kdf(
            2 * secret.SecretBox.KEY_SIZE,
            password.encode("utf-8"),
            salt,
            opslimit=self.opslimit,
            memlimit=self.memlimit,
        )
        key = material[: secret.SecretBox.KEY_SIZE]
        verifier = blake2b(
            material[secret.SecretBox.KEY_SIZE :],
            digest_size=VERIFIER_SIZE,
            encoder=encoding.RawEncoder,
        )
        return key, verifier

    def encrypt(self, data: bytes, password: str) -> bytes:
        salt = utils.random(SALT_SIZE)
        nonce = utils.random(NONCE_SIZE)
        key, verifier = self._derive_keys(password, salt)
        sealed = secret.SecretBox(key).encrypt(bytes(data), nonce)
        return MAGIC + bytes([VERSION]) + salt + nonce + verifier + sealed.ciphertext

    def decrypt(self, data: bytes, password: str) -> bytes:
        if len(data) < MIN_SIZE or not data.startswith(MAGIC):
            raise InvalidEncryptedDataError()
        if data[len(MAGIC)] != VERSION:
            raise InvalidEncryptedDataError(
                f"Unsupported encrypted data version {data[len(MAGIC)]}"
            )

        offset = len(MAGIC) + 1
        salt = data[offset : offset + SALT_SIZE]
        offset += SALT_SIZE
        nonce = data[offset : offset + NONCE_SIZE]
        offset += NONCE_SIZE
        stored_verifier = data[offset:HEADER_SIZE]
        ciphertext = data[HEADER_SIZE:]

        key, verifier = self._derive_keys(password, salt)
        if not hmac.compare_digest(verifier, stored_verifier):
            raise DecryptionFailedError()

        try:
            return secret.SecretBox(key).decrypt(ciphertext, nonce)
        except exceptions.CryptoError as e:
            raise InvalidEncryptedDataError("Encrypted data is truncated or corrupted") from e
