"""JWT validation for tokens issued by the auth provider."""

from jose import JWTError, jwt

from src.config import get_settings

settings = get_settings()


def decode_access_token(token: str) -> dict | None:
    """Decode and validate a JWT token."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        return payload
    except JWTError:
        return None
