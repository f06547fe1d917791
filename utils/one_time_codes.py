import os
import hashlib
import hmac
import secrets

from utils.logger_factory import new_logger

log = new_logger("one_time_codes")

DEFAULT_CODE_HASH_SECRET = "change-me-in-production"

CODE_MIN = 100000
CODE_MAX = 999999


def load_hash_secret() -> str:
    secret = os.getenv("CODE_HASH_SECRET")
    if not secret:
        log.warning("CODE_HASH_SECRET is not set; using the built-in default key. Set it in production.")
        return DEFAULT_CODE_HASH_SECRET
    return secret


# HMAC key for stored code hashes. Rotating it invalidates every outstanding code.
CODE_HASH_SECRET = load_hash_secret()


def generate_code() -> str:
    """
    Generate a 6-digit numeric one-time code, uniform over [100000, 999999].

    Returns:
        The code as a string, e.g. "482913"
    """
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))


def hash_code(code: str) -> str:
    """Keyed SHA-256 of a code, hex encoded. This is what the ledgers store."""
    return hmac.new(
        CODE_HASH_SECRET.encode(),
        code.strip().encode(),
        hashlib.sha256
    ).hexdigest()


def code_matches(submitted: str, stored_hash: str) -> bool:
    # Compare digests using secure comparison
    return hmac.compare_digest(hash_code(submitted), stored_hash)
