from dataclasses import dataclass
from typing import Optional
from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from ..models.course import Course, Enrollment
from ..models.group import Group, GroupMembership
from ..models.evaluation import EvaluationAssignment
import logging

logger = logging.getLogger(__name__)


@dataclass
class CourseDeletionReport:
    course_id: int
    group_memberships: int = 0
    evaluation_assignments: int = 0
    orphaned_groups: int = 0
    enrollments: int = 0
    course: int = 0

    def as_response(self) -> dict:
        return {
            "groupMemberships": self.group_memberships,
            "evaluationAssignments": self.evaluation_assignments,
            "orphanedGroups": self.orphaned_groups,
            "enrollments": self.enrollments,
            "course": self.course,
        }


async def delete_course(session: AsyncSession, course_id: int) -> Optional[CourseDeletionReport]:
    """
    Delete a course and everything hanging off it in one transaction.

    Groups are shared between courses, so a group is only removed once no
    membership in any course references it. Returns None when the course does
    not exist; nothing is written in that case.
    """
    try:
        logger.info(f"Deleting course {course_id}")

        course_result = await session.execute(select(Course.id).filter(Course.id == course_id))
        if course_result.scalar_one_or_none() is None:
            logger.warning(f"Course {course_id} not found")
            return None

        report = CourseDeletionReport(course_id=course_id)

        groups_result = await session.execute(
            select(GroupMembership.group_id).filter(GroupMembership.course_id == course_id).distinct()
        )
        group_ids = list(groups_result.scalars().all())
        logger.info(f"Course {course_id} references {len(group_ids)} groups")

        result = await session.execute(
            delete(GroupMembership).filter(GroupMembership.course_id == course_id)
        )
        report.group_memberships = result.rowcount
        logger.info(f"Deleted {report.group_memberships} group memberships")

        result = await session.execute(
            delete(EvaluationAssignment).filter(EvaluationAssignment.course_id == course_id)
        )
        report.evaluation_assignments = result.rowcount
        logger.info(f"Deleted {report.evaluation_assignments} evaluation assignments")

        for group_id in group_ids:
            remaining = await session.execute(
                select(func.count(GroupMembership.id)).filter(GroupMembership.group_id == group_id)
            )
            if remaining.scalar() == 0:
                result = await session.execute(delete(Group).filter(Group.id == group_id))
                report.orphaned_groups += result.rowcount
                logger.info(f"Deleted orphaned group {group_id}")

        result = await session.execute(delete(Enrollment).filter(Enrollment.course_id == course_id))
        report.enrollments = result.rowcount
        logger.info(f"Deleted {report.enrollments} enrollments")

        result = await session.execute(delete(Course).filter(Course.id == course_id))
        report.course = result.rowcount

        await session.commit()
        logger.info(f"Course {course_id} deleted")
        return report

    except Exception as e:
        logger.error(f"Error deleting course {course_id}, rolling back: {e}")
        await session.rollback()
        raise
