"""
CSV roster import.

Files are parsed with pandas, every cell kept as text. The student name is
taken from the first non-empty of the recognised name columns; rows without
one are reported and skipped. Students are matched by exact name, so
importing the same file twice creates nothing the second time.
"""

import io
import json
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
import pandas as pd
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from ..models.course import Course, Enrollment
from ..models.student import StudentRecord
import logging

logger = logging.getLogger(__name__)

NAME_COLUMNS = ("studentname", "name", "student_name", "Student Name")
MAX_REPORTED_ERRORS = 10


class RosterFormatError(ValueError):
    pass


@dataclass
class ParsedRoster:
    names: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass
class ImportSummary:
    success_count: int = 0
    duplicate_count: int = 0
    errors: List[str] = field(default_factory=list)

    def as_response(self) -> dict:
        return {
            "message": "CSV processing completed",
            "successCount": self.success_count,
            "duplicateCount": self.duplicate_count,
            "errorCount": len(self.errors),
            "errors": self.errors[:MAX_REPORTED_ERRORS],
        }


def parse_roster_csv(content: bytes) -> ParsedRoster:
    if not content or not content.strip():
        raise RosterFormatError("CSV file is empty")

    try:
        df = pd.read_csv(io.BytesIO(content), dtype=str, keep_default_na=False, skipinitialspace=True)
    except (pd.errors.EmptyDataError, pd.errors.ParserError, UnicodeDecodeError) as e:
        logger.error(f"CSV parsing error: {e}")
        raise RosterFormatError("Error parsing CSV file")

    df.columns = [str(column).strip() for column in df.columns]
    parsed = ParsedRoster()

    for row in df.to_dict(orient="records"):
        name = next(
            (str(row[column]).strip() for column in NAME_COLUMNS
             if column in row and str(row[column]).strip()),
            "",
        )
        if name:
            parsed.names.append(name)
        else:
            parsed.errors.append(f"Invalid row: {json.dumps(row)}")

    logger.info(f"Parsed roster: {len(parsed.names)} names, {len(parsed.errors)} invalid rows")
    return parsed


async def _student_by_name(session: AsyncSession, name: str) -> Optional[StudentRecord]:
    result = await session.execute(
        select(StudentRecord).filter(StudentRecord.name == name).order_by(StudentRecord.id)
    )
    return result.scalars().first()


async def import_students(session: AsyncSession, parsed: ParsedRoster) -> ImportSummary:
    """Create a student record for every name not already on file"""
    summary = ImportSummary(errors=list(parsed.errors))

    for name in parsed.names:
        if await _student_by_name(session, name):
            summary.duplicate_count += 1
            continue
        try:
            async with session.begin_nested():
                session.add(StudentRecord(name=name))
                await session.flush()
            summary.success_count += 1
        except SQLAlchemyError as e:
            logger.error(f"Error inserting student {name}: {e}")
            summary.errors.append(f"Error inserting {name}")

    await session.commit()
    logger.info(f"Student import: {summary.success_count} created, {summary.duplicate_count} duplicates, "
                f"{len(summary.errors)} errors")
    return summary


async def _enroll_by_name(session: AsyncSession, course_id: int, name: str) -> Tuple[int, bool]:
    """Returns the student id and whether a new enrollment was made"""
    student = await _student_by_name(session, name)
    if student is None:
        student = StudentRecord(name=name)
        session.add(student)
        await session.flush()

    enrolled = await session.execute(
        select(Enrollment.id).filter(Enrollment.course_id == course_id,
                                     Enrollment.student_id == student.id)
    )
    if enrolled.scalar_one_or_none() is not None:
        return student.id, False

    session.add(Enrollment(course_id=course_id, student_id=student.id))
    await session.flush()
    return student.id, True


async def import_course_roster(session: AsyncSession, course_id: int,
                               parsed: ParsedRoster) -> Optional[ImportSummary]:
    """Enroll every named student in the course, creating missing records.

    Returns None when the course does not exist.
    """
    course = await session.execute(select(Course.id).filter(Course.id == course_id))
    if course.scalar_one_or_none() is None:
        return None

    summary = ImportSummary(errors=list(parsed.errors))

    for name in parsed.names:
        try:
            async with session.begin_nested():
                _, enrolled = await _enroll_by_name(session, course_id, name)
        except SQLAlchemyError as e:
            logger.error(f"Error processing {name} for course {course_id}: {e}")
            summary.errors.append(f"Error processing {name}")
            continue

        if enrolled:
            summary.success_count += 1
        else:
            summary.duplicate_count += 1

    await session.commit()
    logger.info(f"Roster import for course {course_id}: {summary.success_count} enrolled, "
                f"{summary.duplicate_count} already enrolled, {len(summary.errors)} errors")
    return summary
