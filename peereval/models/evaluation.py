from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, UniqueConstraint
from ..core.database import Base
from ..utils.dates import utcnow


class EvaluationAssignment(Base):
    __tablename__ = "evaluation_assignments"
    __table_args__ = (
        UniqueConstraint("course_id", "group_id", "evaluator_student_id", name="uq_assignment_course_group_evaluator"),
    )

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    evaluator_student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    due_date = Column(DateTime(timezone=True), nullable=False)
    name = Column(String, nullable=True)
    points = Column(Integer, nullable=False, default=0)
    available_from = Column(DateTime(timezone=True), nullable=True)
    available_until = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)


class Evaluation(Base):
    __tablename__ = "evaluations"

    id = Column(Integer, primary_key=True, index=True)
    evaluator_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    submitted_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class EvaluationTarget(Base):
    __tablename__ = "evaluation_targets"

    id = Column(Integer, primary_key=True, index=True)
    # unique: one scored target per submitted evaluation
    evaluation_id = Column(Integer, ForeignKey("evaluations.id", ondelete="CASCADE"), unique=True, nullable=False)
    evaluatee_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    contribution_score = Column(Integer, nullable=False)
    plan_mgmt_score = Column(Integer, nullable=False)
    team_climate_score = Column(Integer, nullable=False)
    conflict_res_score = Column(Integer, nullable=False)
    overall_rating = Column(Integer, nullable=False)
    feedback = Column(Text, nullable=True)
