"""Accountability contact model."""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from src.database import Base
from src.models.mixins import TimestampMixin, UTCDateTime


class Contact(Base, TimestampMixin):
    """Someone the owner asked to hold them accountable."""

    __tablename__ = "contacts"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    relation = Column("relationship", String(50), nullable=True)  # friend, partner, coworker...
    verified = Column(Boolean, default=False, nullable=False)
    verified_at = Column(UTCDateTime, nullable=True)

    # Relationships
    owner = relationship("User", backref="contacts")
