from typing import Protocol

from sqlalchemy.orm import Session

from bizdesk.core.exceptions import UnauthorizedException
from bizdesk.core.security import extract_identity
from bizdesk.models.action_context import AuthenticatedUser
from bizdesk.repositories.user_repository import UserRepository


class IdentityProvider(Protocol):
    def require_auth(self) -> AuthenticatedUser:
        """Return the caller or raise UnauthorizedException"""
        ...


class JWTIdentityProvider:
    """
    Identity from a bearer JWT.

    Flow:
    1. Validate the token with the shared SECRET_KEY
    2. Read auth_user_id ('sub') and optional email
    3. Get or auto-create the local User row
    """

    def __init__(self, db: Session, token: str | None):
        self.db = db
        self.token = token

    def require_auth(self) -> AuthenticatedUser:
        if not self.token:
            raise UnauthorizedException("You must be logged in to perform this action")

        auth_user_id, email = extract_identity(self.token)
        user = UserRepository(self.db).get_or_create_by_auth_id(auth_user_id, email)
        return AuthenticatedUser(id=user.id, auth_user_id=user.auth_user_id, email=user.email)


class StaticIdentityProvider:
    """Fixed identity, for trusted in-process callers such as scripts"""

    def __init__(self, user: AuthenticatedUser | None):
        self.user = user

    def require_auth(self) -> AuthenticatedUser:
        if self.user is None:
            raise UnauthorizedException("You must be logged in to perform this action")
        return self.user
