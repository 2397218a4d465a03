"""Issue and verify caller JWTs (HS256) for the generation API."""

import time

import jwt

from services.errors import AuthenticationError

DEFAULT_AUDIENCE = "authenticated"


def create_access_token(
    secret: str,
    owner_id: str,
    *,
    audience: str = DEFAULT_AUDIENCE,
    expiration_seconds: int = 3600,
) -> str:
    """Create an access JWT whose subject is ``owner_id``.
    Sets iat 60s in the past so slightly skewed verifier clocks still accept it.
    """
    now = int(time.time())
    payload = {
        "sub": owner_id,
        "aud": audience,
        "iat": now - 60,
        "exp": now + expiration_seconds,
    }
    return jwt.encode(
        payload,
        secret,
        algorithm="HS256",
    )


def verify_access_token(token: str, secret: str, *, audience: str = DEFAULT_AUDIENCE) -> str:
    """Return the token subject (owner id); raise AuthenticationError when invalid."""
    if not secret:
        raise AuthenticationError("Authentication is not configured")
    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            audience=audience,
            options={"require": ["sub", "exp"]},
        )
    except jwt.PyJWTError as exc:
        raise AuthenticationError(f"Invalid access token: {exc}") from exc
    return str(claims["sub"])


def bearer_token(authorization: str | None) -> str:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        raise AuthenticationError("Missing authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Authorization header must be a bearer token")
    return token.strip()
