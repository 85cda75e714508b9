from datetime import timedelta
from peereval.models import (
    Account, StudentRecord, ProfessorRecord, Course, Enrollment,
    Group, GroupMembership, EvaluationAssignment,
)
from peereval.utils.dates import utcnow


async def add_account(session, username, email, role="student", first_name=None, last_name=None,
                      password_hash="not-a-real-hash"):
    account = Account(username=username, email=email, role=role, first_name=first_name,
                      last_name=last_name, password_hash=password_hash)
    session.add(account)
    await session.flush()
    return account


async def add_student(session, name, email=None):
    student = StudentRecord(name=name, email=email)
    session.add(student)
    await session.flush()
    return student


async def add_course(session, name="Software Engineering", semester="Fall 2025", professor_name="Dr. Grace"):
    professor = ProfessorRecord(name=professor_name, email=None)
    session.add(professor)
    await session.flush()
    course = Course(professor_id=professor.id, name=name, semester=semester)
    session.add(course)
    await session.flush()
    return course


async def add_group(session, name):
    group = Group(name=name)
    session.add(group)
    await session.flush()
    return group


async def enroll(session, course, *students):
    for student in students:
        session.add(Enrollment(course_id=course.id, student_id=student.id))
    await session.flush()


async def add_members(session, course, group, *students):
    for student in students:
        session.add(GroupMembership(course_id=course.id, group_id=group.id, student_id=student.id))
    await session.flush()


async def add_assignment(session, course, group, student, due_in=timedelta(days=7), **fields):
    assignment = EvaluationAssignment(
        course_id=course.id,
        group_id=group.id,
        evaluator_student_id=student.id,
        due_date=utcnow() + due_in,
        **fields,
    )
    session.add(assignment)
    await session.flush()
    return assignment
