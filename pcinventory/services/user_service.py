# pcinventory/services/user_service.py
from uuid import uuid4
from typing import Optional
import bcrypt
from sqlalchemy.orm import Session
from pcinventory.errors import ValidationError
from pcinventory.models.user import User


class UserService:
    """
    Accounts whose id becomes the Identity uid.
    Provides:
    - registration
    - authentication
    - user lookup

    No token / session management here; the routes keep the uid in the session.
    """

    def __init__(self, db: Session):
        self.db = db

    # ======================================================
    # 🔐 Internal helpers
    # ======================================================

    def _hash_password(self, password: str) -> str:
        '''Hash a password using bcrypt'''
        return bcrypt.hashpw(
            password.encode("utf-8"),
            bcrypt.gensalt(),
        ).decode("utf-8")

    def _verify_password(self, password: str, password_hash: str) -> bool:
        '''verify a password against its hash'''
        return bcrypt.checkpw(
            password.encode("utf-8"),
            password_hash.encode("utf-8"),
        )

    @staticmethod
    def _normalize_email(email: str) -> str:
        return (email or "").strip().lower()

    # ======================================================
    # 👤 User CRUD
    # ======================================================

    def create_user(
        self,
        *,
        email: str,
        password: str,
        display_name: Optional[str] = None,
    ) -> User:
        """
        Register a new user.

        :param email: Login email (unique, case-insensitive)
        :type email: str
        :param password: Plaintext password
        :type password: str
        :param display_name: Display name for the user
        :type display_name: Optional[str]
        """
        email = self._normalize_email(email)
        if not email or "@" not in email:
            raise ValidationError("A valid email is required.")
        if not password or len(password) < 6:
            raise ValidationError("Password must be at least 6 characters.")

        # 1️⃣ email 唯一性校验
        if self.get_user_by_email(email):
            raise ValidationError(f"Email '{email}' is already registered.")

        # 2️⃣ 创建用户
        user = User(
            id=str(uuid4()),
            email=email,
            display_name=display_name,
            password_hash=self._hash_password(password),
            is_active=True,
        )

        self.db.add(user)
        self.db.flush()

        return user

    def authenticate(
        self,
        *,
        email: str,
        password: str,
    ) -> User:
        """
        Authenticate user by email + password.
        Returns User if successful.
        """
        user = self.get_user_by_email(email)

        if not user:
            raise ValueError("Invalid email or password")

        if not user.is_active:
            raise PermissionError("User account is deactivated")

        if not self._verify_password(password or "", user.password_hash):
            raise ValueError("Invalid email or password")

        return user

    def get_user_by_email(self, email: str) -> Optional[User]:
        return (
            self.db.query(User)
            .filter(User.email == self._normalize_email(email))
            .first()
        )
