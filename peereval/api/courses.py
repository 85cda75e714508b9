from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, and_, distinct
from pydantic import BaseModel, ConfigDict, Field
from ..core.database import get_db
from ..models.course import Course, Enrollment
from ..models.group import GroupMembership
from ..models.professor import ProfessorRecord
from ..models.student import StudentRecord
from ..services.identity import find_or_create_professor, AmbiguousIdentityError
from ..services.course_deletion import delete_course
from ..services.roster import parse_roster_csv, import_course_roster, RosterFormatError
from ..utils.dates import as_utc
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


class CourseCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    course_name: str = Field(min_length=1, alias="courseName")
    semester: str = Field(min_length=1)
    class_time: Optional[str] = Field(default=None, alias="classTime")
    professor_id: Optional[int] = Field(default=None, alias="professorId")
    user_email: Optional[str] = Field(default=None, alias="userEmail")
    user_name: Optional[str] = Field(default=None, alias="userName")


def course_to_dict(course: Course, **extra) -> dict:
    data = {
        "id": course.id,
        "professor_id": course.professor_id,
        "course_name": course.name,
        "semester": course.semester,
        "class_time": course.class_time,
        "created_at": as_utc(course.created_at),
    }
    data.update(extra)
    return data


def student_count_query():
    return (
        select(Course, func.count(distinct(Enrollment.student_id)).label("student_count"))
        .outerjoin(Enrollment, Enrollment.course_id == Course.id)
        .group_by(Course.id)
    )


@router.get("/courses")
async def get_courses(db: AsyncSession = Depends(get_db)):
    try:
        result = await db.execute(
            select(Course,
                   ProfessorRecord.name.label("professor_name"),
                   ProfessorRecord.email.label("professor_email"),
                   func.count(distinct(Enrollment.student_id)).label("student_count"))
            .outerjoin(ProfessorRecord, Course.professor_id == ProfessorRecord.id)
            .outerjoin(Enrollment, Enrollment.course_id == Course.id)
            .group_by(Course.id, ProfessorRecord.name, ProfessorRecord.email)
            .order_by(Course.semester.desc(), Course.name)
        )
        return {
            "courses": [
                course_to_dict(
                    row.Course,
                    professor_name=row.professor_name,
                    professor_email=row.professor_email,
                    student_count=int(row.student_count),
                )
                for row in result.all()
            ]
        }
    except Exception as e:
        logger.error(f"Error getting courses: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch courses")


@router.post("/courses", status_code=status.HTTP_201_CREATED)
async def create_course(request: CourseCreate, db: AsyncSession = Depends(get_db)):
    """
    Create a course owned by the professor identified by id, email or username
    """
    try:
        logger.info(f"Creating course '{request.course_name}' ({request.semester})")

        try:
            resolution = await find_or_create_professor(
                db,
                professor_id=request.professor_id,
                email=request.user_email,
                name=request.user_name,
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except AmbiguousIdentityError as e:
            raise HTTPException(status_code=409, detail={"message": str(e), "candidates": e.candidates})

        course = Course(
            professor_id=resolution.record_id,
            name=request.course_name,
            semester=request.semester,
            class_time=request.class_time or None,
        )
        db.add(course)
        await db.commit()
        logger.info(f"Course {course.id} created for professor {resolution.record_id} ({resolution.outcome.value})")
        return {"message": "Course created successfully", "course": course_to_dict(course)}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating course: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Failed to create course")


@router.get("/courses/{course_id}")
async def get_course(course_id: int, db: AsyncSession = Depends(get_db)):
    try:
        course = await db.get(Course, course_id)
        if not course:
            raise HTTPException(status_code=404, detail="Course not found")
        return {"course": course_to_dict(course)}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting course {course_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch course")


@router.delete("/courses/{course_id}")
async def remove_course(course_id: int, db: AsyncSession = Depends(get_db)):
    try:
        report = await delete_course(db, course_id)
        if report is None:
            raise HTTPException(status_code=404, detail="Course not found")
        return {
            "message": "Course deleted successfully",
            "courseId": course_id,
            "deleted": report.as_response(),
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting course {course_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete course")


@router.get("/courses/{course_id}/roster")
async def get_roster(course_id: int, db: AsyncSession = Depends(get_db)):
    try:
        result = await db.execute(
            select(StudentRecord.id, StudentRecord.name, StudentRecord.email, GroupMembership.group_id)
            .join(Enrollment, Enrollment.student_id == StudentRecord.id)
            .outerjoin(
                GroupMembership,
                and_(GroupMembership.student_id == StudentRecord.id,
                     GroupMembership.course_id == course_id),
            )
            .filter(Enrollment.course_id == course_id)
            .order_by(StudentRecord.name)
        )
        return {
            "roster": [
                {"student_id": row.id, "student_name": row.name, "email": row.email, "group_id": row.group_id}
                for row in result.all()
            ]
        }
    except Exception as e:
        logger.error(f"Error getting roster for course {course_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch roster")


@router.post("/courses/{course_id}/upload-roster")
async def upload_roster(course_id: int, csvFile: UploadFile = File(...), db: AsyncSession = Depends(get_db)):
    """
    Enroll the students listed in a CSV file, creating missing student records
    """
    try:
        logger.info(f"Roster upload for course {course_id}: {csvFile.filename}")
        try:
            parsed = parse_roster_csv(await csvFile.read())
        except RosterFormatError as e:
            raise HTTPException(status_code=400, detail=str(e))

        summary = await import_course_roster(db, course_id, parsed)
        if summary is None:
            raise HTTPException(status_code=404, detail="Course not found")
        return summary.as_response()

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error uploading roster for course {course_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error processing CSV file")
