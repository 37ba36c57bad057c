"""
WeCom Channel Cipher

Signature verification and AES-256-CBC encryption for the WeCom callback
channel.

Plaintext layout inside the cipher:

    [16 random bytes][4-byte BE length L][L bytes content]
    [4-byte BE length R][R bytes random token][corp id]

The trailing corp id binds a payload to this application and is the only
authentication of decrypted content; it is checked before content is
returned. Padding is PKCS#7 over the platform's 32-byte block.
"""

import base64
import binascii
import hashlib
import hmac
import os
import secrets
import struct
from typing import Dict

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..common.errors import ConfigurationFault, IntegrityFault
from . import envelope

KEY_SEED_LENGTH = 43
KEY_LENGTH = 32
IV_LENGTH = 16
RANDOM_PREFIX_LENGTH = 16
PAD_BLOCK_BITS = 32 * 8

_LENGTH = struct.Struct(">I")


def derive_aes_key(encoding_aes_key: str) -> bytes:
    """
    Expand the 43-character EncodingAESKey into the 32-byte AES key.

    Raises:
        ConfigurationFault: If the seed is not a 43-character base64 string
            that decodes to exactly 32 bytes
    """
    if not encoding_aes_key or len(encoding_aes_key) != KEY_SEED_LENGTH:
        raise ConfigurationFault(
            f"encodingAESKey must be {KEY_SEED_LENGTH} characters",
            missing=["encodingAESKey"],
        )
    try:
        key = base64.b64decode(encoding_aes_key + "=", validate=True)
    except (binascii.Error, ValueError) as e:
        raise ConfigurationFault(
            f"encodingAESKey is not valid base64: {e}",
            missing=["encodingAESKey"],
        ) from e
    if len(key) != KEY_LENGTH:
        raise ConfigurationFault(
            f"encodingAESKey expands to {len(key)} bytes, expected {KEY_LENGTH}",
            missing=["encodingAESKey"],
        )
    return key


def compute_signature(token: str, timestamp: str, nonce: str, payload: str) -> str:
    """SHA-1 over the lexicographically sorted, concatenated inputs"""
    parts = sorted([token, timestamp, nonce, payload])
    return hashlib.sha1("".join(parts).encode("utf-8")).hexdigest()


class WeComCrypto:
    """
    Message crypto for one WeCom application.

    Immutable once constructed. Build it once at startup from the configured
    token, EncodingAESKey and corp id and share it between requests.
    """

    def __init__(self, token: str, encoding_aes_key: str, corp_id: str):
        """
        Initialize the cipher.

        Args:
            token: Callback verification token
            encoding_aes_key: 43-character EncodingAESKey
            corp_id: Channel identifier embedded in every plaintext

        Raises:
            ConfigurationFault: On a missing credential or malformed key seed
        """
        missing = [
            name for name, value in (
                ("corpId", corp_id),
                ("token", token),
                ("encodingAESKey", encoding_aes_key),
            )
            if not value
        ]
        if missing:
            raise ConfigurationFault(missing=missing)

        self._token = token
        self._corp_id = corp_id
        self._key = derive_aes_key(encoding_aes_key)

    @property
    def corp_id(self) -> str:
        return self._corp_id

    # ------------------------------------------------------------------
    # Signatures
    # ------------------------------------------------------------------

    def generate_signature(self, timestamp: str, nonce: str, payload: str) -> str:
        """Sign an outgoing payload"""
        return compute_signature(self._token, timestamp, nonce, payload)

    def verify_signature(
        self,
        signature: str,
        timestamp: str,
        nonce: str,
        payload: str,
    ) -> bool:
        """
        Verify a msg_signature.

        Args:
            signature: Hex signature supplied by the platform
            timestamp: timestamp query parameter
            nonce: nonce query parameter
            payload: Encrypted payload (Encrypt field or echostr)

        Returns:
            True if signature matches
        """
        if not signature:
            return False
        expected = self.generate_signature(timestamp, nonce, payload)
        return hmac.compare_digest(expected, signature)

    # ------------------------------------------------------------------
    # Encryption
    # ------------------------------------------------------------------

    def decrypt(self, ciphertext_b64: str) -> str:
        """
        Decrypt a base64 payload and return its content.

        Raises:
            IntegrityFault: If the payload cannot be decoded, its padding or
                layout is invalid, or its corp id does not match
        """
        try:
            raw = base64.b64decode(ciphertext_b64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise IntegrityFault(f"payload is not valid base64: {e}") from e

        if len(raw) <= IV_LENGTH or (len(raw) - IV_LENGTH) % 16:
            raise IntegrityFault(f"payload has invalid length {len(raw)}")

        iv, ciphertext = raw[:IV_LENGTH], raw[IV_LENGTH:]
        decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()

        try:
            unpadder = padding.PKCS7(PAD_BLOCK_BITS).unpadder()
            plain = unpadder.update(padded) + unpadder.finalize()
        except ValueError as e:
            raise IntegrityFault(f"invalid padding: {e}") from e

        content, corp_id = self._unpack(plain)

        if corp_id != self._corp_id:
            raise IntegrityFault(
                f"corp id mismatch: expected {self._corp_id!r}, got {corp_id!r}"
            )
        return content

    def encrypt(self, plaintext: str) -> str:
        """Encrypt content for the channel. Every call uses fresh randomness."""
        content = plaintext.encode("utf-8")
        token = secrets.token_hex(8).encode("utf-8")

        plain = b"".join([
            os.urandom(RANDOM_PREFIX_LENGTH),
            _LENGTH.pack(len(content)),
            content,
            _LENGTH.pack(len(token)),
            token,
            self._corp_id.encode("utf-8"),
        ])

        padder = padding.PKCS7(PAD_BLOCK_BITS).padder()
        padded = padder.update(plain) + padder.finalize()

        iv = os.urandom(IV_LENGTH)
        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()

        return base64.b64encode(iv + ciphertext).decode("ascii")

    def encrypt_reply(self, reply: str, timestamp: str, nonce: str) -> str:
        """
        Build a signed, encrypted passive-reply envelope.

        Args:
            reply: Inner reply envelope text
            timestamp: Reply timestamp
            nonce: Reply nonce

        Returns:
            Envelope text with Encrypt, MsgSignature, TimeStamp and Nonce
        """
        encrypted = self.encrypt(reply)
        fields: Dict[str, str] = {
            "Encrypt": encrypted,
            "MsgSignature": self.generate_signature(timestamp, nonce, encrypted),
            "TimeStamp": timestamp,
            "Nonce": nonce,
        }
        return envelope.encode(fields)

    def _unpack(self, plain: bytes):
        """Split a decrypted buffer into (content, corp_id)"""
        offset = RANDOM_PREFIX_LENGTH
        try:
            (content_length,) = _LENGTH.unpack_from(plain, offset)
            offset += _LENGTH.size
            content_end = offset + content_length
            if content_end > len(plain):
                raise IntegrityFault(
                    f"content length {content_length} exceeds payload size {len(plain)}"
                )
            content = plain[offset:content_end]

            (token_length,) = _LENGTH.unpack_from(plain, content_end)
            corp_start = content_end + _LENGTH.size + token_length
            if corp_start > len(plain):
                raise IntegrityFault(
                    f"random token length {token_length} exceeds payload size {len(plain)}"
                )
            corp_id = plain[corp_start:]

            return content.decode("utf-8"), corp_id.decode("utf-8")
        except struct.error as e:
            raise IntegrityFault(f"truncated payload: {e}") from e
        except UnicodeDecodeError as e:
            raise IntegrityFault(f"payload is not valid UTF-8: {e}") from e
