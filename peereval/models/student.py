from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from ..core.database import Base
from ..utils.dates import utcnow


class StudentRecord(Base):
    __tablename__ = "students"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, index=True, nullable=False)
    email = Column(String, index=True, nullable=True)
    # unique: an account links to at most one student record
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), unique=True, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
