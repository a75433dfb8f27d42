from sqlalchemy.orm import Session
from bizdesk.models.user import User


class UserRepository:
    """Repository for User model operations"""

    def __init__(self, db: Session):
        self.db = db

    def get_or_create_by_auth_id(self, auth_user_id: str, email: str | None = None) -> User:
        """
        Get user by auth_user_id or create if doesn't exist.

        Called when a user makes their first action call with a valid JWT,
        and when an admin invites someone who has never signed in. A known
        email is filled in if the stored row has none.

        Args:
            auth_user_id: User ID from the JWT 'sub' claim
            email: Optional email from the token or invite

        Returns:
            User object (either existing or newly created)
        """
        user = self.get_by_auth_id(auth_user_id)

        if not user:
            user = User(auth_user_id=auth_user_id, email=email)
            self.db.add(user)
            self.db.commit()
            self.db.refresh(user)
        elif email and not user.email:
            user.email = email
            self.db.commit()
            self.db.refresh(user)

        return user

    def get_by_auth_id(self, auth_user_id: str) -> User | None:
        """Get user by auth_user_id"""
        return self.db.query(User).filter(User.auth_user_id == auth_user_id).first()

    def get_by_id(self, user_id: int) -> User | None:
        """Get user by internal ID"""
        return self.db.query(User).filter(User.id == user_id).first()
