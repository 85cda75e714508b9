from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from pydantic import BaseModel, ConfigDict, Field
from ..core.database import get_db
from ..models.group import GroupMembership
from ..models.student import StudentRecord
from ..services.identity import MatchOutcome, resolve_student_by_email
from ..services.submission import (
    EvaluationSubmission, StudentNotFoundError, submit_evaluation, MIN_SCORE, MAX_SCORE,
)
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


class EvaluationCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    evaluator_id: int = Field(alias="evaluatorId")
    teammate_id: int = Field(alias="teammateId")
    contribution_score: int = Field(ge=MIN_SCORE, le=MAX_SCORE)
    plan_mgmt_score: int = Field(ge=MIN_SCORE, le=MAX_SCORE)
    team_climate_score: int = Field(ge=MIN_SCORE, le=MAX_SCORE)
    conflict_res_score: int = Field(ge=MIN_SCORE, le=MAX_SCORE)
    overall_rating: int = Field(ge=MIN_SCORE, le=MAX_SCORE)
    feedback: Optional[str] = None


@router.get("/teammates")
async def get_teammates(course_id: Optional[int] = Query(None, alias="courseId"),
                        group_id: Optional[int] = Query(None, alias="groupId"),
                        student_email: Optional[str] = Query(None, alias="studentEmail"),
                        db: AsyncSession = Depends(get_db)):
    """
    Members of the evaluator's group in this course, excluding the evaluator
    """
    if course_id is None or group_id is None or not student_email:
        raise HTTPException(status_code=400, detail="courseId, groupId, and studentEmail are required")

    try:
        resolution = await resolve_student_by_email(db, student_email)
        if resolution.outcome == MatchOutcome.AMBIGUOUS:
            raise HTTPException(
                status_code=409,
                detail={"message": "More than one student record matches this email",
                        "candidates": resolution.candidates},
            )
        if not resolution.found:
            raise HTTPException(status_code=404, detail="Student not found")
        if resolution.wrote:
            await db.commit()

        evaluator_id = resolution.record_id
        result = await db.execute(
            select(StudentRecord.id, StudentRecord.name)
            .join(GroupMembership, GroupMembership.student_id == StudentRecord.id)
            .filter(GroupMembership.course_id == course_id,
                    GroupMembership.group_id == group_id,
                    StudentRecord.id != evaluator_id)
            .order_by(StudentRecord.name)
        )
        return {
            "teammates": [{"id": row.id, "name": row.name} for row in result.all()],
            "evaluatorId": evaluator_id,
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching teammates for {student_email}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Failed to retrieve teammate list")


@router.post("/submit-evaluation", status_code=status.HTTP_201_CREATED)
async def create_evaluation(request: EvaluationCreate, db: AsyncSession = Depends(get_db)):
    submission = EvaluationSubmission(
        evaluator_id=request.evaluator_id,
        evaluatee_id=request.teammate_id,
        contribution_score=request.contribution_score,
        plan_mgmt_score=request.plan_mgmt_score,
        team_climate_score=request.team_climate_score,
        conflict_res_score=request.conflict_res_score,
        overall_rating=request.overall_rating,
        feedback=request.feedback,
    )
    try:
        evaluation = await submit_evaluation(db, submission)
        return {"message": "Evaluation submitted successfully", "evaluationId": evaluation.id}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StudentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Error submitting evaluation: {e}")
        raise HTTPException(status_code=500, detail="Failed to submit evaluation")
