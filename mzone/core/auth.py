"""
Auth dependency for routes that need a signed-in user.

Reads `Authorization: Bearer <token>` and returns the token subject.
"""
from fastapi import Request

from mzone.core.errors import AuthError
from mzone.core.security import decode_token


def get_current_user_id(request: Request) -> str:
    """
    Extract the current user ID from the bearer token.

    Raises:
        AuthError 401: no bearer token on the request
        AuthError 403: token invalid or expired
    """
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("Access token required")

    claims = decode_token(token.strip())
    user_id = claims["sub"]
    request.state.user_id = user_id
    return user_id
