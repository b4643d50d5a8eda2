"""Content cipher for VWBL payloads.

Uses AES-256-GCM. The key string handed out by `create_key()` (or any other
string) is stretched to a 32-byte master key with HKDF-SHA256, so the same
key representation serves all three encoding modes:

- text:   base64(nonce || ciphertext || tag)
- buffer: nonce || ciphertext || tag
- stream: salt header, then AES-GCM sealed segments of fixed plaintext size.
  Each segment nonce is counter || last-flag under a subkey derived from the
  master key and the per-stream salt.
"""

import base64
import binascii
import os
import secrets
from collections.abc import AsyncIterable, AsyncIterator

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from vwbl.shared.exceptions import CipherError
from vwbl.shared.logging import get_logger

logger = get_logger(__name__)

KEY_LEN = 32
NONCE_LEN = 12
TAG_LEN = 16
STREAM_HEADER_LEN = 16
STREAM_SEGMENT_SIZE = 64 * 1024
_STREAM_COUNTER_LEN = NONCE_LEN - 1
_MAX_STREAM_SEGMENTS = 1 << (8 * _STREAM_COUNTER_LEN)

_MASTER_INFO = b"vwbl/content-key/v1"
_STREAM_INFO = b"vwbl/stream-key/v1"


def create_key() -> str:
    """Create a random key used for encryption and decryption."""
    return secrets.token_urlsafe(32)


def create_document_id() -> str:
    """Random 32-byte document identifier, 0x-prefixed hex."""
    return "0x" + secrets.token_bytes(32).hex()


def _master_key(key: str) -> bytes:
    if not isinstance(key, str) or not key:
        raise CipherError("key must be a non-empty string")
    hkdf = HKDF(algorithm=hashes.SHA256(), length=KEY_LEN, salt=None, info=_MASTER_INFO)
    return hkdf.derive(key.encode("utf-8"))


def _stream_key(key: str, salt: bytes) -> bytes:
    hkdf = HKDF(algorithm=hashes.SHA256(), length=KEY_LEN, salt=salt, info=_STREAM_INFO)
    return hkdf.derive(_master_key(key))


def _seal(key: str, plaintext: bytes) -> bytes:
    nonce = os.urandom(NONCE_LEN)
    return nonce + AESGCM(_master_key(key)).encrypt(nonce, plaintext, None)


def _open(key: str, container: bytes) -> bytes:
    if len(container) < NONCE_LEN + TAG_LEN:
        raise CipherError(
            "ciphertext container is too short",
            details={"length": len(container), "minimum": NONCE_LEN + TAG_LEN},
        )
    nonce, sealed = container[:NONCE_LEN], container[NONCE_LEN:]
    try:
        return AESGCM(_master_key(key)).decrypt(nonce, sealed, None)
    except InvalidTag as e:
        logger.warning("content_decrypt_failed", mode="buffer", size=len(container))
        raise CipherError("decryption failed - wrong key or corrupted data") from e


# ----- Text mode -----


def encrypt_string(message: str, key: str) -> str:
    """Encrypt a string (typically base64 of a file) into a base64 container."""
    return base64.b64encode(_seal(key, message.encode("utf-8"))).decode("ascii")


def decrypt_string(cipher_text: str, key: str) -> str:
    """Decrypt a container produced by `encrypt_string`.

    Raises:
        CipherError: If the container is malformed or authentication fails
    """
    try:
        encoded = cipher_text.encode("ascii")
        container = base64.b64decode(encoded, validate=True)
    except (binascii.Error, UnicodeEncodeError, AttributeError) as e:
        raise CipherError("ciphertext is not valid base64") from e
    # Reject non-canonical padding bits so every altered character is detected
    if base64.b64encode(container) != encoded:
        raise CipherError("ciphertext is not canonical base64")
    plaintext = _open(key, container)
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise CipherError("decrypted payload is not text - encoding tag mismatch?") from e


# ----- Buffer mode -----


def encrypt_file(data: bytes, key: str) -> bytes:
    """Encrypt an in-memory file."""
    return _seal(key, bytes(data))


def decrypt_file(data: bytes, key: str) -> bytes:
    """Decrypt a buffer produced by `encrypt_file`."""
    return _open(key, bytes(data))


# ----- Stream mode -----


def _segment_nonce(counter: int, last: bool) -> bytes:
    if counter >= _MAX_STREAM_SEGMENTS:
        raise CipherError("stream too long for segment counter")
    return counter.to_bytes(_STREAM_COUNTER_LEN, "big") + (b"\x01" if last else b"\x00")


async def encrypt_stream(source: AsyncIterable[bytes], key: str) -> AsyncIterator[bytes]:
    """Encrypt a byte stream.

    Yields the salt header first, then one sealed segment per
    STREAM_SEGMENT_SIZE bytes of plaintext. The final segment (possibly
    empty) carries the last-flag so truncation is detected on decrypt.
    """
    salt = os.urandom(STREAM_HEADER_LEN)
    aead = AESGCM(_stream_key(key, salt))
    yield salt

    counter = 0
    buffer = bytearray()
    async for chunk in source:
        buffer.extend(chunk)
        # Keep at least one byte back so the final segment is known at EOF
        while len(buffer) > STREAM_SEGMENT_SIZE:
            segment = bytes(buffer[:STREAM_SEGMENT_SIZE])
            del buffer[:STREAM_SEGMENT_SIZE]
            yield aead.encrypt(_segment_nonce(counter, False), segment, None)
            counter += 1

    yield aead.encrypt(_segment_nonce(counter, True), bytes(buffer), None)


async def decrypt_stream(source: AsyncIterable[bytes], key: str) -> AsyncIterator[bytes]:
    """Decrypt a stream produced by `encrypt_stream`, segment by segment.

    Raises:
        CipherError: On a short header, a tampered or reordered segment, or a
            truncated stream
    """
    sealed_size = STREAM_SEGMENT_SIZE + TAG_LEN
    buffer = bytearray()
    aead: AESGCM | None = None
    counter = 0

    def open_segment(segment: bytes, last: bool) -> bytes:
        assert aead is not None
        try:
            return aead.decrypt(_segment_nonce(counter, last), segment, None)
        except InvalidTag as e:
            logger.warning("content_decrypt_failed", mode="stream", segment=counter)
            raise CipherError(
                "stream decryption failed - wrong key or corrupted data",
                details={"segment": counter},
            ) from e

    async for chunk in source:
        buffer.extend(chunk)
        if aead is None:
            if len(buffer) < STREAM_HEADER_LEN:
                continue
            salt = bytes(buffer[:STREAM_HEADER_LEN])
            del buffer[:STREAM_HEADER_LEN]
            aead = AESGCM(_stream_key(key, salt))
        while len(buffer) > sealed_size:
            segment = bytes(buffer[:sealed_size])
            del buffer[:sealed_size]
            yield open_segment(segment, False)
            counter += 1

    if aead is None:
        raise CipherError(
            "stream header is missing or truncated",
            details={"length": len(buffer), "header_length": STREAM_HEADER_LEN},
        )
    if len(buffer) < TAG_LEN:
        raise CipherError("stream is truncated", details={"segment": counter})
    yield open_segment(bytes(buffer), True)


async def iter_bytes(data: bytes, chunk_size: int = STREAM_SEGMENT_SIZE) -> AsyncIterator[bytes]:
    """Expose an in-memory buffer as an async byte stream."""
    for start in range(0, len(data), chunk_size):
        yield data[start : start + chunk_size]


async def collect_stream(stream: AsyncIterable[bytes]) -> bytes:
    """Drain an async byte stream into a single buffer."""
    out = bytearray()
    async for chunk in stream:
        out.extend(chunk)
    return bytes(out)
