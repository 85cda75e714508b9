from dataclasses import dataclass
from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from ..models.student import StudentRecord
from ..models.evaluation import Evaluation, EvaluationTarget
from ..utils.dates import utcnow
import logging

logger = logging.getLogger(__name__)

MIN_SCORE = 0
MAX_SCORE = 5

SCORE_FIELDS = (
    "contribution_score",
    "plan_mgmt_score",
    "team_climate_score",
    "conflict_res_score",
    "overall_rating",
)


class StudentNotFoundError(LookupError):
    def __init__(self, student_id: int, role: str):
        super().__init__(f"{role.capitalize()} not found")
        self.student_id = student_id
        self.role = role


@dataclass
class EvaluationSubmission:
    evaluator_id: int
    evaluatee_id: int
    contribution_score: int
    plan_mgmt_score: int
    team_climate_score: int
    conflict_res_score: int
    overall_rating: int
    feedback: Optional[str] = None

    def validate(self):
        for name in SCORE_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be an integer")
            if not MIN_SCORE <= value <= MAX_SCORE:
                raise ValueError(f"{name} must be between {MIN_SCORE} and {MAX_SCORE}")


async def _insert_target(session: AsyncSession, evaluation_id: int, submission: EvaluationSubmission):
    target = EvaluationTarget(
        evaluation_id=evaluation_id,
        evaluatee_id=submission.evaluatee_id,
        contribution_score=submission.contribution_score,
        plan_mgmt_score=submission.plan_mgmt_score,
        team_climate_score=submission.team_climate_score,
        conflict_res_score=submission.conflict_res_score,
        overall_rating=submission.overall_rating,
        feedback=submission.feedback,
    )
    session.add(target)
    await session.flush()
    return target


async def submit_evaluation(session: AsyncSession, submission: EvaluationSubmission) -> Evaluation:
    """
    Store an evaluation header and its scored target as one unit.

    Scores are validated before the database is touched. Either both rows
    are committed or neither is. Returns the stored header.
    """
    submission.validate()

    try:
        for student_id, role in ((submission.evaluator_id, "evaluator"),
                                 (submission.evaluatee_id, "evaluatee")):
            exists = await session.execute(select(StudentRecord.id).filter(StudentRecord.id == student_id))
            if exists.scalar_one_or_none() is None:
                raise StudentNotFoundError(student_id, role)

        evaluation = Evaluation(evaluator_id=submission.evaluator_id, submitted_at=utcnow())
        session.add(evaluation)
        await session.flush()
        evaluation_id = evaluation.id

        await _insert_target(session, evaluation_id, submission)

        await session.commit()
        logger.info(f"Evaluation {evaluation_id} submitted by student {submission.evaluator_id} "
                    f"for student {submission.evaluatee_id}")
        return evaluation

    except Exception as e:
        logger.error(f"Error submitting evaluation, rolling back: {e}")
        await session.rollback()
        raise
