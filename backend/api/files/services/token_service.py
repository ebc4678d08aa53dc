"""Token issuer — unguessable download tokens.

Tokens are opaque to every other component. Entropy failures from the OS are
not caught: nothing can safely be shared without randomness.
"""

import secrets

TOKEN_BYTES = 32  # 256 bits


def issue() -> str:
    """Return a fresh URL-safe download token."""
    return secrets.token_urlsafe(TOKEN_BYTES)
