"""Opaque download token generation."""

import secrets

from share_api.errors import TokenGenerationError

TOKEN_BYTES = 16


def new_token() -> str:
    """Return 16 bytes from the OS CSPRNG as 32 lowercase hex characters."""
    try:
        return secrets.token_bytes(TOKEN_BYTES).hex()
    except (OSError, NotImplementedError) as e:
        raise TokenGenerationError(
            "failed to read secure random bytes",
            operation="new_token",
            original_error=e,
        ) from e
