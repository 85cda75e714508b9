from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, distinct
from ..models.student import StudentRecord
from ..models.professor import ProfessorRecord
from ..models.course import Course, Enrollment
from ..models.group import Group, GroupMembership
from ..models.evaluation import EvaluationAssignment, Evaluation, EvaluationTarget
import logging

logger = logging.getLogger(__name__)


def _percentage(part: int, whole: int) -> float:
    if not whole:
        return 0.0
    return round(part / whole * 100, 1)


async def calculate_student_scores(session: AsyncSession):
    """
    Average overall rating each student has received, best first
    """
    result = await session.execute(
        select(
            StudentRecord.id,
            StudentRecord.name,
            func.avg(EvaluationTarget.overall_rating).label("average_score"),
            func.count(EvaluationTarget.id).label("evaluation_count"),
        )
        .join(EvaluationTarget, EvaluationTarget.evaluatee_id == StudentRecord.id)
        .group_by(StudentRecord.id, StudentRecord.name)
    )

    student_scores = [
        {
            "studentId": row.id,
            "studentName": row.name,
            "averageScore": round(float(row.average_score), 2),
            "evaluationCount": int(row.evaluation_count),
        }
        for row in result.all()
    ]
    student_scores.sort(key=lambda x: (-x["averageScore"], x["studentName"]))
    return student_scores


async def calculate_group_stats(session: AsyncSession):
    """
    Students and scheduled assignments per (group, course)
    """
    members = await session.execute(
        select(
            Group.id,
            Group.name,
            Course.name.label("course_name"),
            func.count(distinct(GroupMembership.student_id)).label("student_count"),
        )
        .join(GroupMembership, GroupMembership.group_id == Group.id)
        .join(Course, GroupMembership.course_id == Course.id)
        .group_by(Group.id, Group.name, Course.id, Course.name)
        .order_by(Course.name, Group.name)
    )
    students_per_group = [
        {
            "groupId": row.id,
            "groupName": row.name,
            "courseName": row.course_name,
            "studentCount": int(row.student_count),
        }
        for row in members.all()
    ]

    scheduled = await session.execute(
        select(
            Group.id,
            Group.name,
            Course.name.label("course_name"),
            func.count(EvaluationAssignment.id).label("assignment_count"),
        )
        .join(EvaluationAssignment, EvaluationAssignment.group_id == Group.id)
        .join(Course, EvaluationAssignment.course_id == Course.id)
        .group_by(Group.id, Group.name, Course.id, Course.name)
        .order_by(Course.name, Group.name)
    )
    assignments_per_group = [
        {
            "groupId": row.id,
            "groupName": row.name,
            "courseName": row.course_name,
            "assignmentCount": int(row.assignment_count),
        }
        for row in scheduled.all()
    ]

    return students_per_group, assignments_per_group


async def calculate_professor_stats(session: AsyncSession):
    """
    Courses and distinct enrolled students per professor, plus how many
    evaluation assignments each professor has scheduled
    """
    courses = await session.execute(
        select(
            ProfessorRecord.id,
            ProfessorRecord.name,
            func.count(distinct(Course.id)).label("course_count"),
            func.count(distinct(Enrollment.student_id)).label("student_count"),
        )
        .join(Course, Course.professor_id == ProfessorRecord.id)
        .outerjoin(Enrollment, Enrollment.course_id == Course.id)
        .group_by(ProfessorRecord.id, ProfessorRecord.name)
        .order_by(ProfessorRecord.name)
    )
    professor_stats = [
        {
            "professorId": row.id,
            "professorName": row.name,
            "courseCount": int(row.course_count),
            "studentCount": int(row.student_count),
        }
        for row in courses.all()
    ]

    scheduled = await session.execute(
        select(
            ProfessorRecord.id,
            ProfessorRecord.name,
            func.count(EvaluationAssignment.id).label("scheduled_count"),
        )
        .join(Course, Course.professor_id == ProfessorRecord.id)
        .join(EvaluationAssignment, EvaluationAssignment.course_id == Course.id)
        .group_by(ProfessorRecord.id, ProfessorRecord.name)
        .order_by(ProfessorRecord.name)
    )
    evaluations_per_professor = [
        {
            "professorId": row.id,
            "professorName": row.name,
            "scheduledCount": int(row.scheduled_count),
        }
        for row in scheduled.all()
    ]

    return professor_stats, evaluations_per_professor


async def calculate_dashboard(session: AsyncSession):
    """
    Aggregate figures for the professor analytics dashboard
    """
    try:
        logger.info("Calculating dashboard analytics")

        total_evaluations = (await session.execute(select(func.count(Evaluation.id)))).scalar() or 0
        average_score = (await session.execute(select(func.avg(EvaluationTarget.overall_rating)))).scalar()
        total_students = (await session.execute(select(func.count(StudentRecord.id)))).scalar() or 0

        # Students who have submitted at least one evaluation
        submitted = (await session.execute(
            select(func.count(distinct(Evaluation.evaluator_id)))
        )).scalar() or 0

        total_assignments = (await session.execute(select(func.count(EvaluationAssignment.id)))).scalar() or 0
        completed_assignments = (await session.execute(
            select(func.count(EvaluationAssignment.id)).filter(EvaluationAssignment.completed_at.isnot(None))
        )).scalar() or 0

        per_semester = await session.execute(
            select(Course.semester, func.count(EvaluationAssignment.id).label("scheduled_count"))
            .join(EvaluationAssignment, EvaluationAssignment.course_id == Course.id)
            .group_by(Course.semester)
            .order_by(Course.semester)
        )

        students_per_group, assignments_per_group = await calculate_group_stats(session)
        professor_stats, evaluations_per_professor = await calculate_professor_stats(session)

        dashboard = {
            "totalEvaluations": int(total_evaluations),
            "overallAverageScore": round(float(average_score), 2) if average_score is not None else None,
            "totalStudents": int(total_students),
            "submissionRate": {
                "submitted": int(submitted),
                "total": int(total_students),
                "percentage": _percentage(submitted, total_students),
            },
            "completionRate": {
                "completed": int(completed_assignments),
                "total": int(total_assignments),
                "percentage": _percentage(completed_assignments, total_assignments),
            },
            "studentScores": await calculate_student_scores(session),
            "studentsPerGroup": students_per_group,
            "professorStats": professor_stats,
            "evaluationsPerProfessor": evaluations_per_professor,
            "assignmentsPerGroup": assignments_per_group,
            "evaluationsPerSemester": [
                {"semester": row.semester, "scheduledCount": int(row.scheduled_count)}
                for row in per_semester.all()
            ],
        }

        logger.info(f"Dashboard calculated: {dashboard['totalEvaluations']} evaluations, "
                    f"{dashboard['totalStudents']} students")
        return dashboard

    except Exception as e:
        logger.error(f"Error calculating dashboard analytics: {e}")
        raise
