from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from ..core.database import get_db
from ..models.account import Account
from ..models.course import Course
from ..models.professor import ProfessorRecord
from ..services.identity import MatchOutcome, resolve_professor_for_account, professor_ids_matching
from .courses import course_to_dict, student_count_query
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


async def _professor_id_for(db: AsyncSession, identifier: str) -> Optional[int]:
    """Numeric ids are used as-is; otherwise try a professor username, then an email or name"""
    if identifier.isdigit():
        return int(identifier)

    result = await db.execute(
        select(Account).filter(Account.username == identifier, Account.role == "professor")
    )
    account = result.scalar_one_or_none()
    if account:
        resolution = await resolve_professor_for_account(db, account)
        if resolution.outcome == MatchOutcome.AMBIGUOUS:
            logger.warning(f"Professor account {account.username} matches records {resolution.candidates}")
        return resolution.record_id

    ids = await professor_ids_matching(db, identifier)
    return ids[0] if ids else None


@router.get("/professors")
async def get_professors(db: AsyncSession = Depends(get_db)):
    """
    Professor accounts whose professor record owns at least one course
    """
    try:
        accounts = await db.execute(
            select(Account).filter(Account.role == "professor").order_by(Account.username)
        )
        professors = []

        for account in accounts.scalars().all():
            resolution = await resolve_professor_for_account(db, account)
            if not resolution.found:
                continue

            course_count = await db.execute(
                select(func.count(Course.id)).filter(Course.professor_id == resolution.record_id)
            )
            if course_count.scalar() == 0:
                continue

            record = await db.get(ProfessorRecord, resolution.record_id)
            professors.append({
                "id": account.id,
                "username": account.username,
                "email": account.email or record.email,
                "first_name": account.first_name,
                "last_name": account.last_name,
                "professor_id": record.id,
                "professor_name": record.name or account.username,
            })

        return {"professors": professors}
    except Exception as e:
        logger.error(f"Error getting professors: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch professors")


@router.get("/professors/{professor_id}/courses")
async def get_professor_courses(professor_id: str, db: AsyncSession = Depends(get_db)):
    try:
        record_id = await _professor_id_for(db, professor_id)
        if record_id is None:
            logger.info(f"No professor record for '{professor_id}'")
            return {"courses": []}

        result = await db.execute(
            student_count_query()
            .filter(Course.professor_id == record_id)
            .order_by(Course.semester.desc(), Course.name)
        )
        return {
            "courses": [
                course_to_dict(row.Course, student_count=int(row.student_count))
                for row in result.all()
            ]
        }
    except Exception as e:
        logger.error(f"Error getting courses for professor {professor_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch courses")
