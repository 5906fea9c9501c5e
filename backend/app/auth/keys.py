"""
API key generation utilities.

Notes:
  • Keys are stored as issued — the registry must be able to re-send an
    existing key to its owner, so there is no one-way hashing here.
  • Raw keys use the dk_live_ prefix (convention, not security) followed
    by 32 characters drawn from [a-z0-9] with the `secrets` CSPRNG
    (~165 bits). Uniqueness relies on that randomness alone.
  • Logs only ever see key_prefix(), never the full key.
"""

import secrets
import string

_KEY_PREFIX = "dk_live_"
_KEY_ALPHABET = string.ascii_lowercase + string.digits
_KEY_RANDOM_LENGTH = 32
_LOG_PREFIX_LENGTH = 12


def generate_api_key() -> str:
    """Return a new raw API key."""
    random_part = "".join(
        secrets.choice(_KEY_ALPHABET) for _ in range(_KEY_RANDOM_LENGTH)
    )
    return f"{_KEY_PREFIX}{random_part}"


def key_prefix(raw_key: str) -> str:
    """First characters of a key, for identification in logs."""
    return raw_key[:_LOG_PREFIX_LENGTH]
