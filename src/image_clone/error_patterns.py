"""
Error pattern constants for registry operations.

Centralized definitions for classifying error messages printed by the
registry CLI (digest, copy).
"""

# Authentication/authorization error patterns
AUTH_ERROR_PATTERNS = [
    "401",
    "403",
    "unauthorized",
    "forbidden",
    "denied",
    "authentication required",
    "no basic auth credentials",
    "authentication failed",
    "not authorized",
]

# Rate limiting error patterns
RATE_LIMIT_PATTERNS = [
    "429",
    "toomanyrequests",
    "rate limit",
    "too many requests",
]

# Not found error patterns
NOT_FOUND_PATTERNS = [
    "404",
    "not found",
    "manifest unknown",
    "name unknown",
    "does not exist",
]

# Connection/network error patterns
CONNECTION_ERROR_PATTERNS = [
    "no such host",
    "connection refused",
    "connection reset",
    "dial tcp",
    "i/o timeout",
    "tls handshake timeout",
]


def _matches(stderr: str, patterns: list[str]) -> bool:
    stderr_lower = stderr.lower()
    return any(pattern in stderr_lower for pattern in patterns)


def is_auth_error(stderr: str) -> bool:
    """Check if error is due to authentication/authorization failure."""
    return _matches(stderr, AUTH_ERROR_PATTERNS)


def is_rate_limit_error(stderr: str) -> bool:
    """Check if error is due to rate limiting."""
    return _matches(stderr, RATE_LIMIT_PATTERNS)


def is_not_found_error(stderr: str) -> bool:
    """Check if error is due to the image not existing."""
    return _matches(stderr, NOT_FOUND_PATTERNS)


def is_connection_error(stderr: str) -> bool:
    """Check if error is a network failure."""
    return _matches(stderr, CONNECTION_ERROR_PATTERNS)


def classify_error_type(stderr: str) -> str:
    """
    Classify the type of error from stderr output.

    Args:
        stderr: Error output from the registry CLI

    Returns:
        Error type: "auth", "rate_limit", "not_found", "connection", or "unknown"
    """
    if is_auth_error(stderr):
        return "auth"

    if is_rate_limit_error(stderr):
        return "rate_limit"

    if is_not_found_error(stderr):
        return "not_found"

    if is_connection_error(stderr):
        return "connection"

    return "unknown"
