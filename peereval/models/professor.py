from sqlalchemy import Column, Integer, String, DateTime
from ..core.database import Base
from ..utils.dates import utcnow


class ProfessorRecord(Base):
    __tablename__ = "professors"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, index=True, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
