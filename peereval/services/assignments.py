"""
Scheduling of evaluation assignments and derivation of their status.

An assignment obliges one evaluator (a student record) to evaluate one group
of one course by a due date. A batch request fans out over target groups and
evaluators; each item that fails is reported and skipped while the others go
through. A batch where nothing succeeds is rolled back as a whole.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence
from sqlalchemy import select, update, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from ..models.course import Course, Enrollment
from ..models.group import Group, GroupMembership
from ..models.student import StudentRecord
from ..models.professor import ProfessorRecord
from ..models.evaluation import EvaluationAssignment
from ..utils.dates import as_utc, utcnow
import logging

logger = logging.getLogger(__name__)


class EvaluatorMode(str, Enum):
    EXPLICIT = "explicit"
    GROUP = "group"
    EVERYONE = "everyone"


class AssignmentStatus(str, Enum):
    COMPLETED = "completed"
    OVERDUE = "overdue"
    NOT_AVAILABLE = "not_available"
    EXPIRED = "expired"
    PENDING = "pending"


class AssignmentRequestError(Exception):
    """Raised before any write when the batch as a whole cannot be processed"""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass
class AssignmentRequest:
    course_id: int
    due_date: Optional[datetime]
    group_ids: List[int] = field(default_factory=list)
    evaluator_ids: Optional[List[int]] = None
    mode: Optional[EvaluatorMode] = None
    name: Optional[str] = None
    points: int = 0
    available_from: Optional[datetime] = None
    available_until: Optional[datetime] = None

    @property
    def resolved_mode(self) -> EvaluatorMode:
        if self.mode is not None:
            return EvaluatorMode(self.mode)
        if self.evaluator_ids:
            return EvaluatorMode.EXPLICIT
        return EvaluatorMode.GROUP


@dataclass
class AssignmentBatchResult:
    created: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return len(self.created) > 0


def derive_status(assignment, now: Optional[datetime] = None) -> AssignmentStatus:
    """Status of an assignment at ``now``.

    Checked in order: completed, overdue, not yet available, expired, pending.
    Works with model instances and with query rows exposing the same names.
    """
    now = as_utc(now) if now is not None else utcnow()

    if assignment.completed_at is not None:
        return AssignmentStatus.COMPLETED
    if as_utc(assignment.due_date) < now:
        return AssignmentStatus.OVERDUE
    available_from = as_utc(assignment.available_from)
    if available_from is not None and available_from > now:
        return AssignmentStatus.NOT_AVAILABLE
    available_until = as_utc(assignment.available_until)
    if available_until is not None and available_until < now:
        return AssignmentStatus.EXPIRED
    return AssignmentStatus.PENDING


def student_listing_key(assignment, now: datetime):
    """Open overdue work first, then other open work, then completed; each by due date"""
    if assignment.completed_at is None and as_utc(assignment.due_date) < now:
        bucket = 0
    elif assignment.completed_at is None:
        bucket = 1
    else:
        bucket = 2
    return bucket, as_utc(assignment.due_date)


def serialize_assignment(assignment, now: Optional[datetime] = None, **extra) -> Dict[str, Any]:
    data = {
        "id": assignment.id,
        "course_id": assignment.course_id,
        "group_id": assignment.group_id,
        "evaluator_student_id": assignment.evaluator_student_id,
        "due_date": as_utc(assignment.due_date),
        "name": assignment.name,
        "points": assignment.points,
        "available_from": as_utc(assignment.available_from),
        "available_until": as_utc(assignment.available_until),
        "created_at": as_utc(assignment.created_at),
        "completed_at": as_utc(assignment.completed_at),
        "status": derive_status(assignment, now).value,
    }
    data.update(extra)
    return data


def _unique(ids: Sequence[int]) -> List[int]:
    seen = set()
    ordered = []
    for value in ids:
        if value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered


async def _target_groups(session: AsyncSession, request: AssignmentRequest, mode: EvaluatorMode) -> List[int]:
    group_ids = _unique(request.group_ids or [])

    if not group_ids and mode == EvaluatorMode.EVERYONE:
        result = await session.execute(
            select(GroupMembership.group_id)
            .filter(GroupMembership.course_id == request.course_id)
            .distinct()
            .order_by(GroupMembership.group_id)
        )
        group_ids = list(result.scalars().all())

    if not group_ids:
        raise AssignmentRequestError("At least one group is required")

    found = await session.execute(select(Group.id).filter(Group.id.in_(group_ids)))
    missing = set(group_ids) - set(found.scalars().all())
    if missing:
        raise AssignmentRequestError(f"Group not found: {sorted(missing)[0]}", status_code=404)
    return group_ids


async def _evaluators_for(session: AsyncSession, request: AssignmentRequest,
                          mode: EvaluatorMode, group_id: int) -> List[int]:
    if mode == EvaluatorMode.EXPLICIT:
        return _unique(request.evaluator_ids or [])

    if mode == EvaluatorMode.GROUP:
        result = await session.execute(
            select(GroupMembership.student_id)
            .filter(GroupMembership.course_id == request.course_id,
                    GroupMembership.group_id == group_id)
            .order_by(GroupMembership.student_id)
        )
    else:
        result = await session.execute(
            select(Enrollment.student_id)
            .filter(Enrollment.course_id == request.course_id)
            .order_by(Enrollment.student_id)
        )
    return _unique(result.scalars().all())


async def _ensure_enrolled(session: AsyncSession, course_id: int, student_id: int):
    enrolled = await session.execute(
        select(Enrollment.id).filter(Enrollment.course_id == course_id,
                                     Enrollment.student_id == student_id)
    )
    if enrolled.scalar_one_or_none() is not None:
        return

    async with session.begin_nested():
        session.add(Enrollment(course_id=course_id, student_id=student_id))
        await session.flush()
    logger.info(f"Auto-enrolled student {student_id} in course {course_id}")


async def _create_one(session: AsyncSession, request: AssignmentRequest,
                      group_id: int, student_id: int) -> Dict[str, Any]:
    async with session.begin_nested():
        assignment = EvaluationAssignment(
            course_id=request.course_id,
            group_id=group_id,
            evaluator_student_id=student_id,
            due_date=as_utc(request.due_date),
            name=request.name or None,
            points=request.points or 0,
            available_from=as_utc(request.available_from),
            available_until=as_utc(request.available_until),
            completed_at=None,
        )
        session.add(assignment)
        await session.flush()
        return serialize_assignment(assignment)


async def create_assignments(session: AsyncSession, request: AssignmentRequest) -> AssignmentBatchResult:
    """
    Create one assignment per (target group, evaluator).

    Raises ``AssignmentRequestError`` for problems with the request as a whole
    (missing due date, unknown course or group, no target groups). Everything
    else is collected per item in ``AssignmentBatchResult.errors``. Commits
    when at least one assignment was created, otherwise rolls back.
    """
    if request.due_date is None:
        raise AssignmentRequestError("Due date is required")

    mode = request.resolved_mode
    logger.info(f"Creating assignments for course {request.course_id} "
                f"(mode: {mode.value}, groups: {request.group_ids})")

    try:
        course = await session.execute(select(Course.id).filter(Course.id == request.course_id))
        if course.scalar_one_or_none() is None:
            raise AssignmentRequestError("Course not found", status_code=404)

        group_ids = await _target_groups(session, request, mode)
        result = AssignmentBatchResult()

        for group_id in group_ids:
            evaluator_ids = await _evaluators_for(session, request, mode, group_id)
            if not evaluator_ids:
                result.errors.append(f"Group {group_id} has no evaluators")
                continue

            for student_id in evaluator_ids:
                student = await session.get(StudentRecord, student_id)
                if student is None:
                    result.errors.append(f"Student {student_id} not found")
                    continue

                try:
                    await _ensure_enrolled(session, request.course_id, student_id)
                except SQLAlchemyError as e:
                    logger.error(f"Could not enroll student {student_id} in course {request.course_id}: {e}")
                    result.errors.append(f"Failed to enroll student {student_id} in course")
                    continue

                existing = await session.execute(
                    select(EvaluationAssignment.id).filter(
                        EvaluationAssignment.course_id == request.course_id,
                        EvaluationAssignment.group_id == group_id,
                        EvaluationAssignment.evaluator_student_id == student_id,
                    )
                )
                if existing.scalar_one_or_none() is not None:
                    result.errors.append(
                        f"Assignment already exists for student {student_id} in group {group_id}"
                    )
                    continue

                try:
                    created = await _create_one(session, request, group_id, student_id)
                except SQLAlchemyError as e:
                    logger.error(f"Error creating assignment for student {student_id}: {e}")
                    result.errors.append(f"Failed to create assignment for student {student_id}")
                    continue

                result.created.append(created)
                logger.info(f"Created assignment {created['id']} for student {student_id} in group {group_id}")

        logger.info(f"Assignment batch: {len(result.created)} created, {len(result.errors)} errors")

        if not result.succeeded:
            await session.rollback()
            logger.info("No assignments created, batch rolled back")
            return result

        await session.commit()
        return result

    except Exception:
        await session.rollback()
        raise


async def list_course_assignments(session: AsyncSession, course_id: int,
                                  now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    now = as_utc(now) if now is not None else utcnow()
    result = await session.execute(
        select(EvaluationAssignment,
               StudentRecord.name.label("evaluator_name"),
               StudentRecord.email.label("evaluator_email"),
               Group.name.label("group_name"),
               Course.name.label("course_name"))
        .join(StudentRecord, EvaluationAssignment.evaluator_student_id == StudentRecord.id)
        .join(Group, EvaluationAssignment.group_id == Group.id)
        .join(Course, EvaluationAssignment.course_id == Course.id)
        .filter(EvaluationAssignment.course_id == course_id)
        .order_by(EvaluationAssignment.due_date, StudentRecord.name)
    )
    return [
        serialize_assignment(
            row.EvaluationAssignment, now,
            evaluator_name=row.evaluator_name,
            evaluator_email=row.evaluator_email,
            group_name=row.group_name,
            course_name=row.course_name,
        )
        for row in result.all()
    ]


async def list_student_assignments(session: AsyncSession, student_id: int,
                                   now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    now = as_utc(now) if now is not None else utcnow()
    result = await session.execute(
        select(EvaluationAssignment,
               Group.name.label("group_name"),
               Course.name.label("course_name"),
               Course.semester.label("semester"),
               ProfessorRecord.name.label("professor_name"))
        .join(Group, EvaluationAssignment.group_id == Group.id)
        .join(Course, EvaluationAssignment.course_id == Course.id)
        .join(ProfessorRecord, Course.professor_id == ProfessorRecord.id)
        .filter(EvaluationAssignment.evaluator_student_id == student_id)
    )
    rows = sorted(result.all(), key=lambda row: student_listing_key(row.EvaluationAssignment, now))
    return [
        serialize_assignment(
            row.EvaluationAssignment, now,
            group_name=row.group_name,
            course_name=row.course_name,
            semester=row.semester,
            professor_name=row.professor_name,
        )
        for row in rows
    ]


async def complete_assignment(session: AsyncSession, assignment_id: int) -> bool:
    result = await session.execute(
        update(EvaluationAssignment)
        .filter(EvaluationAssignment.id == assignment_id)
        .values(completed_at=utcnow())
    )
    if result.rowcount == 0:
        await session.rollback()
        return False
    await session.commit()
    logger.info(f"Assignment {assignment_id} marked complete")
    return True


async def delete_assignment(session: AsyncSession, assignment_id: int) -> bool:
    result = await session.execute(
        delete(EvaluationAssignment).filter(EvaluationAssignment.id == assignment_id)
    )
    if result.rowcount == 0:
        await session.rollback()
        return False
    await session.commit()
    logger.info(f"Assignment {assignment_id} deleted")
    return True
