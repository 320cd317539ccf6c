"""User profile model."""

from sqlalchemy import Column, Integer, String

from src.database import Base
from src.models.mixins import TimestampMixin


class User(Base, TimestampMixin):
    """Task owner profile. Accounts are managed by the auth provider."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=True)

    @property
    def display_name(self) -> str:
        """Name used in notifications, falling back to the email address."""
        return self.full_name or self.email
