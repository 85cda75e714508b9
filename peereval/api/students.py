import math
from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from ..core.database import get_db
from ..models.course import Course, Enrollment
from ..models.professor import ProfessorRecord
from ..models.student import StudentRecord
from ..services.identity import MatchOutcome, resolve_student_by_email
from ..services.roster import parse_roster_csv, import_students, RosterFormatError
from .courses import course_to_dict
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/upload-students")
async def upload_students(csvFile: UploadFile = File(...), db: AsyncSession = Depends(get_db)):
    """
    Create student records from a CSV file; names already on file count as duplicates
    """
    try:
        logger.info(f"Student upload: {csvFile.filename}")
        try:
            parsed = parse_roster_csv(await csvFile.read())
        except RosterFormatError as e:
            raise HTTPException(status_code=400, detail=str(e))

        summary = await import_students(db, parsed)
        return summary.as_response()
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error uploading students: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error processing CSV file")


@router.get("/students")
async def get_students(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=500),
                       search: str = "", db: AsyncSession = Depends(get_db)):
    try:
        query = select(StudentRecord)
        count_query = select(func.count(StudentRecord.id))
        if search:
            # % and _ typed by the user match literally
            matches = StudentRecord.name.icontains(search, autoescape=True)
            query = query.filter(matches)
            count_query = count_query.filter(matches)

        total_count = (await db.execute(count_query)).scalar() or 0
        result = await db.execute(
            query.order_by(StudentRecord.name, StudentRecord.id).offset((page - 1) * limit).limit(limit)
        )

        return {
            "students": [
                {"id": student.id, "name": student.name, "email": student.email}
                for student in result.scalars().all()
            ],
            "pagination": {
                "currentPage": page,
                "totalPages": math.ceil(total_count / limit),
                "totalCount": total_count,
                "limit": limit,
            },
        }
    except Exception as e:
        logger.error(f"Error getting students: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch students")


@router.get("/students/{student_email}/courses")
async def get_student_courses(student_email: str, db: AsyncSession = Depends(get_db)):
    try:
        resolution = await resolve_student_by_email(db, student_email)
        if resolution.outcome == MatchOutcome.AMBIGUOUS:
            raise HTTPException(
                status_code=409,
                detail={"message": "More than one student record matches this email",
                        "candidates": resolution.candidates},
            )
        if not resolution.found:
            raise HTTPException(status_code=404, detail="Student not found. Please ensure you are enrolled in courses.")
        if resolution.wrote:
            await db.commit()

        student = await db.get(StudentRecord, resolution.record_id)
        result = await db.execute(
            select(Course,
                   ProfessorRecord.name.label("professor_name"),
                   ProfessorRecord.email.label("professor_email"))
            .join(Enrollment, Enrollment.course_id == Course.id)
            .join(ProfessorRecord, Course.professor_id == ProfessorRecord.id)
            .filter(Enrollment.student_id == student.id)
            .order_by(Course.semester.desc(), Course.name)
        )

        return {
            "student": {"id": student.id, "name": student.name, "email": student.email or student_email},
            "courses": [
                course_to_dict(row.Course, professor_name=row.professor_name,
                               professor_email=row.professor_email)
                for row in result.all()
            ],
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting courses for student {student_email}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Failed to fetch student courses")
