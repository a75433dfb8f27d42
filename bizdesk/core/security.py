from jose import JWTError, jwt
from bizdesk.config import settings
from bizdesk.core.exceptions import UnauthorizedException


def decode_jwt(token: str) -> dict:
    """
    Decode and validate JWT token using shared SECRET_KEY.

    Args:
        token: JWT access token from Authorization header

    Returns:
        Decoded token payload with 'sub' (user_id), 'exp', optional 'email'

    Raises:
        UnauthorizedException: If token invalid, expired, or malformed
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        raise UnauthorizedException(f"Invalid token: {str(e)}")

    # jose checks expiry when present; we also require it to be present
    if payload.get("exp") is None:
        raise UnauthorizedException("Token missing expiration")

    if payload.get("sub") is None:
        raise UnauthorizedException("Token missing user identifier")

    return payload


def extract_identity(token: str) -> tuple[str, str | None]:
    """Extract (auth_user_id, email) from JWT token"""
    payload = decode_jwt(token)
    return payload["sub"], payload.get("email")
