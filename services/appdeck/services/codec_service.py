"""Storage codec for environment variables flagged as encrypted.

Default mode is reversible base64 obfuscation: deterministic, but it gives
no confidentiality against anyone with database access. The opt-in fernet
mode uses the cryptography library's Fernet (AES-128-CBC + HMAC-SHA256);
its ciphertexts carry a prefix so values written in obfuscate mode stay
readable after switching.

decode_value never raises. Values that are not validly encoded (legacy
plaintext, corrupted rows, wrong key) come back unchanged.
"""

import base64
import binascii

from cryptography.fernet import Fernet, InvalidToken

from appdeck.logging_config import get_logger

logger = get_logger(__name__)

_FERNET_PREFIX = "fernet:"

_fernet: Fernet | None = None


def init_codec() -> None:
    """Initialize the codec from config. Call during API lifespan startup."""
    global _fernet  # noqa: PLW0603

    from appdeck.config import CodecMode, settings

    _fernet = None
    if settings.encryption.mode != CodecMode.FERNET:
        logger.info("Value codec initialized", mode=CodecMode.OBFUSCATE.value)
        return

    key = settings.encryption.key
    if not key:
        logger.error(
            "Fernet mode selected but no key configured (APPDECK_ENCRYPTION__KEY). "
            "Falling back to obfuscation."
        )
        return

    try:
        _fernet = Fernet(key.encode())
        logger.info("Value codec initialized", mode=CodecMode.FERNET.value)
    except (ValueError, binascii.Error) as e:
        logger.error("Invalid Fernet key, falling back to obfuscation", error=str(e))


def encode_value(plaintext: str) -> str:
    """Encode a plaintext value for storage."""
    if _fernet is not None:
        return _FERNET_PREFIX + _fernet.encrypt(plaintext.encode()).decode()
    return base64.b64encode(plaintext.encode("utf-8")).decode("ascii")


def decode_value(stored: str) -> str:
    """Decode a stored value. Returns the input unchanged if it is not decodable."""
    if stored.startswith(_FERNET_PREFIX):
        if _fernet is None:
            logger.warning("Fernet-encoded value found but fernet mode is not active")
            return stored
        try:
            return _fernet.decrypt(stored[len(_FERNET_PREFIX) :].encode()).decode()
        except InvalidToken:
            logger.warning("Failed to decrypt value, key mismatch or corrupted data")
            return stored

    try:
        return base64.b64decode(stored.encode("ascii"), validate=True).decode("utf-8")
    except (UnicodeError, binascii.Error):
        # Legacy plaintext stored before the flag was set
        return stored
