from sqlalchemy import Column, Integer, String, DateTime
from ..core.database import Base
from ..utils.dates import utcnow


class Account(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, index=True, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    role = Column(String, nullable=False, default="student")
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    reset_token = Column(String, index=True, nullable=True)
    reset_token_expires = Column(DateTime(timezone=True), nullable=True)
    password_reset_requested_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    @property
    def display_name(self) -> str:
        """Name used to match this account against roster records"""
        return self.full_name or self.username
