import secrets

ACCESS_CODE_BYTES = 16


def generate_access_code() -> str:
    """Return a fresh unguessable access code (128 random bits, hex encoded)."""
    return secrets.token_hex(ACCESS_CODE_BYTES)
