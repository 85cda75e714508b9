from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, and_, delete
from pydantic import BaseModel, ConfigDict, Field
from ..core.database import get_db
from ..models.course import Course, Enrollment
from ..models.group import Group, GroupMembership
from ..models.student import StudentRecord
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


class GroupCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    group_name: str = Field(alias="groupName")


class GroupStudentsAdd(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    student_ids: List[int] = Field(min_length=1, alias="studentIds")


async def _require_course(db: AsyncSession, course_id: int):
    result = await db.execute(select(Course.id).filter(Course.id == course_id))
    if result.scalar_one_or_none() is None:
        raise HTTPException(status_code=404, detail="Course not found")


@router.post("/courses/{course_id}/groups", status_code=status.HTTP_201_CREATED)
async def create_group(course_id: int, request: GroupCreate, db: AsyncSession = Depends(get_db)):
    try:
        name = request.group_name.strip()
        if not name:
            raise HTTPException(status_code=400, detail="Group name is required")

        await _require_course(db, course_id)

        group = Group(name=name)
        db.add(group)
        await db.commit()
        logger.info(f"Group {group.id} '{name}' created from course {course_id}")
        return {"message": "Group created successfully", "group": {"id": group.id, "group_name": group.name}}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating group: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Failed to create group")


@router.get("/courses/{course_id}/groups")
async def get_groups(course_id: int, db: AsyncSession = Depends(get_db)):
    """
    Every group, with how many of its members belong to this course
    """
    try:
        result = await db.execute(
            select(Group.id, Group.name, func.count(GroupMembership.student_id).label("student_count"))
            .outerjoin(
                GroupMembership,
                and_(GroupMembership.group_id == Group.id, GroupMembership.course_id == course_id),
            )
            .group_by(Group.id, Group.name)
            .order_by(Group.name)
        )
        return {
            "groups": [
                {"id": row.id, "group_name": row.name, "student_count": int(row.student_count)}
                for row in result.all()
            ]
        }
    except Exception as e:
        logger.error(f"Error getting groups for course {course_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch groups")


@router.post("/courses/{course_id}/groups/{group_id}/students")
async def add_group_students(course_id: int, group_id: int, request: GroupStudentsAdd,
                             db: AsyncSession = Depends(get_db)):
    """
    Add enrolled students to a group; students outside the course are skipped
    """
    try:
        await _require_course(db, course_id)
        group = await db.get(Group, group_id)
        if not group:
            raise HTTPException(status_code=404, detail="Group not found")

        success_count = 0
        duplicate_count = 0
        skipped_count = 0

        for student_id in dict.fromkeys(request.student_ids):
            existing = await db.execute(
                select(GroupMembership.id).filter(
                    GroupMembership.course_id == course_id,
                    GroupMembership.group_id == group_id,
                    GroupMembership.student_id == student_id,
                )
            )
            if existing.scalar_one_or_none() is not None:
                duplicate_count += 1
                continue

            enrolled = await db.execute(
                select(Enrollment.id).filter(Enrollment.course_id == course_id,
                                             Enrollment.student_id == student_id)
            )
            if enrolled.scalar_one_or_none() is None:
                skipped_count += 1
                continue

            db.add(GroupMembership(course_id=course_id, group_id=group_id, student_id=student_id))
            await db.flush()
            success_count += 1

        await db.commit()
        logger.info(f"Group {group_id} in course {course_id}: {success_count} added, "
                    f"{duplicate_count} already members, {skipped_count} not enrolled")
        return {
            "message": "Students added to group",
            "successCount": success_count,
            "duplicateCount": duplicate_count,
            "skippedCount": skipped_count,
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error adding students to group {group_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Failed to add students to group")


@router.get("/courses/{course_id}/groups/{group_id}/students")
async def get_group_students(course_id: int, group_id: int, db: AsyncSession = Depends(get_db)):
    try:
        result = await db.execute(
            select(StudentRecord.id, StudentRecord.name, StudentRecord.email)
            .join(GroupMembership, GroupMembership.student_id == StudentRecord.id)
            .filter(GroupMembership.course_id == course_id, GroupMembership.group_id == group_id)
            .order_by(StudentRecord.name)
        )
        return {
            "students": [
                {"id": row.id, "name": row.name, "email": row.email}
                for row in result.all()
            ]
        }
    except Exception as e:
        logger.error(f"Error getting students of group {group_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch group students")


@router.delete("/courses/{course_id}/groups/{group_id}/students/{student_id}")
async def remove_group_student(course_id: int, group_id: int, student_id: int,
                               db: AsyncSession = Depends(get_db)):
    try:
        result = await db.execute(
            delete(GroupMembership).filter(
                GroupMembership.course_id == course_id,
                GroupMembership.group_id == group_id,
                GroupMembership.student_id == student_id,
            )
        )
        if result.rowcount == 0:
            raise HTTPException(status_code=404, detail="Student not found in this group")

        await db.commit()
        return {"message": "Student removed from group successfully"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error removing student {student_id} from group {group_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Failed to remove student from group")
