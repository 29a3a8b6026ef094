"""Security utilities for opaque bearer tokens."""
import hmac
import secrets

TOKEN_BYTES = 16


def generate_token() -> str:
    """Create a new random user token (32 hex characters)."""
    return secrets.token_hex(TOKEN_BYTES)


def parse_bearer(authorization: str | None) -> str | None:
    """Extract the credential from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return None
    scheme, _, credentials = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    return credentials.strip() or None


def tokens_match(provided: str | None, expected: str | None) -> bool:
    """Constant-time comparison; an unset expected token never matches."""
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def mask_token(token: str | None) -> str:
    """Shorten a token for logs."""
    if not token:
        return "<none>"
    if len(token) <= 8:
        return "***"
    return f"{token[:4]}...{token[-2:]}"
