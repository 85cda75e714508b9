from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, ConfigDict, Field, AliasChoices
from ..core.database import get_db
from ..services.identity import MatchOutcome, resolve_student_by_email
from ..services.assignments import (
    AssignmentRequest, AssignmentRequestError, EvaluatorMode,
    create_assignments, list_course_assignments, list_student_assignments,
    complete_assignment, delete_assignment,
)
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


class AssignmentCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    course_id: int = Field(alias="courseId")
    group_id: Optional[int] = Field(default=None, alias="groupId")
    group_ids: Optional[List[int]] = Field(default=None, alias="groupIds")
    evaluator_student_ids: Optional[List[int]] = Field(default=None, alias="evaluatorStudentIds")
    mode: Optional[EvaluatorMode] = None
    due_date: Optional[datetime] = Field(default=None, alias="dueDate")
    assignment_name: Optional[str] = Field(default=None, alias="assignmentName")
    points: int = Field(default=0, ge=0)
    available_from: Optional[datetime] = Field(default=None, alias="availableFrom")
    available_until: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices("until", "availableUntil", "available_until"),
    )

    def to_request(self) -> AssignmentRequest:
        group_ids = list(self.group_ids or [])
        if self.group_id is not None and self.group_id not in group_ids:
            group_ids.insert(0, self.group_id)
        return AssignmentRequest(
            course_id=self.course_id,
            due_date=self.due_date,
            group_ids=group_ids,
            evaluator_ids=self.evaluator_student_ids,
            mode=self.mode,
            name=self.assignment_name,
            points=self.points,
            available_from=self.available_from,
            available_until=self.available_until,
        )


@router.post("/evaluation-assignments", status_code=status.HTTP_201_CREATED)
async def create_evaluation_assignments(request: AssignmentCreate, db: AsyncSession = Depends(get_db)):
    """
    Schedule evaluations for one or more groups of a course.

    Items that fail are listed in ``errors``; the request only fails as a
    whole when no assignment could be created.
    """
    try:
        result = await create_assignments(db, request.to_request())
    except AssignmentRequestError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error creating evaluation assignments: {e}")
        raise HTTPException(status_code=500, detail="Failed to create evaluation assignment")

    if not result.succeeded:
        raise HTTPException(
            status_code=400,
            detail={"message": "Failed to create any assignments", "errors": result.errors},
        )

    response = {
        "message": f"Successfully created {len(result.created)} assignment(s)",
        "assignments": result.created,
    }
    if result.errors:
        response["errors"] = result.errors
    return response


@router.get("/courses/{course_id}/evaluation-assignments")
async def get_course_assignments(course_id: int, db: AsyncSession = Depends(get_db)):
    try:
        return {"assignments": await list_course_assignments(db, course_id)}
    except Exception as e:
        logger.error(f"Error getting assignments for course {course_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch evaluation assignments")


@router.get("/students/{student_email}/evaluation-assignments")
async def get_student_assignments(student_email: str, db: AsyncSession = Depends(get_db)):
    try:
        resolution = await resolve_student_by_email(db, student_email)
        if resolution.outcome == MatchOutcome.AMBIGUOUS:
            raise HTTPException(
                status_code=409,
                detail={"message": "More than one student record matches this email",
                        "candidates": resolution.candidates},
            )
        if not resolution.found:
            logger.info(f"No student record for {student_email}")
            return {"assignments": []}
        if resolution.wrote:
            await db.commit()

        return {"assignments": await list_student_assignments(db, resolution.record_id)}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting assignments for student {student_email}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Failed to fetch evaluation assignments")


@router.patch("/evaluation-assignments/{assignment_id}/complete")
async def mark_assignment_complete(assignment_id: int, db: AsyncSession = Depends(get_db)):
    try:
        if not await complete_assignment(db, assignment_id):
            raise HTTPException(status_code=404, detail="Assignment not found")
        return {"message": "Assignment marked as completed", "assignmentId": assignment_id}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error completing assignment {assignment_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Failed to update assignment")


@router.delete("/evaluation-assignments/{assignment_id}")
async def remove_assignment(assignment_id: int, db: AsyncSession = Depends(get_db)):
    try:
        if not await delete_assignment(db, assignment_id):
            raise HTTPException(status_code=404, detail="Assignment not found")
        return {"message": "Assignment deleted successfully", "assignmentId": assignment_id}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting assignment {assignment_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Failed to delete assignment")
