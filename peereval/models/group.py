from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from ..core.database import Base
from ..utils.dates import utcnow


class Group(Base):
    __tablename__ = "groups"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class GroupMembership(Base):
    """A student's place in a group, scoped to one course"""
    __tablename__ = "group_memberships"
    __table_args__ = (
        UniqueConstraint("course_id", "group_id", "student_id", name="uq_membership_course_group_student"),
    )

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    added_at = Column(DateTime(timezone=True), default=utcnow)
