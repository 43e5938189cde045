from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from rizara.core.exceptions import ConflictError, DatabaseError, NotFoundError
from rizara.models.user import User
from rizara.utils.logger import db_logger
from rizara.utils.otp_utils import normalize_email, utc_now


class UserService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, user_id: str, active_only: bool = True) -> Optional[User]:
        query = self.db.query(User).filter(User.id == user_id)
        if active_only:
            query = query.filter(User.is_active.is_(True))
        return query.first()

    def find_by_email(self, email: str, active_only: bool = False) -> Optional[User]:
        query = self.db.query(User).filter(User.email == normalize_email(email))
        if active_only:
            query = query.filter(User.is_active.is_(True))
        return query.first()

    def exists(self, email: str) -> bool:
        return self.find_by_email(email) is not None

    def insert(self, name: str, email: str, hashed_password: str,
               phone: Optional[str] = None, email_verified: bool = False) -> User:
        """Create a user; a duplicate email raises ConflictError"""
        user = User(
            name=name.strip(),
            email=normalize_email(email),
            phone=phone or None,
            hashed_password=hashed_password,
            is_active=True,
            email_verified=email_verified,
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            db_logger.warning(f"Duplicate user insert for {user.email}")
            raise ConflictError() from e
        except SQLAlchemyError as e:
            self.db.rollback()
            db_logger.error(f"Error creating user {user.email}: {e}")
            raise DatabaseError("Failed to create account") from e
        self.db.refresh(user)
        return user

    def update_password(self, user: User, hashed_password: str) -> None:
        user.hashed_password = hashed_password
        self._commit(f"Error updating password for user {user.id}")

    def update_email(self, user: User, new_email: str) -> User:
        """Move the account to a new, already confirmed address"""
        user.email = normalize_email(new_email)
        user.email_verified = True
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise ConflictError() from e
        except SQLAlchemyError as e:
            self.db.rollback()
            db_logger.error(f"Error updating email for user {user.id}: {e}")
            raise DatabaseError() from e
        self.db.refresh(user)
        return user

    def mark_email_verified(self, user_id: str, email: str) -> User:
        user = self.db.query(User).filter(
            User.id == user_id, User.email == normalize_email(email)).first()
        if not user:
            raise NotFoundError("User not found")
        user.email_verified = True
        self._commit(f"Error verifying email for user {user_id}")
        return user

    def touch_last_login(self, user: User) -> None:
        user.last_login = utc_now()
        self._commit(f"Error updating last login for user {user.id}")

    def _commit(self, error_message: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            db_logger.error(f"{error_message}: {e}")
            raise DatabaseError() from e
