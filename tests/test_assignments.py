from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
import pytest
from sqlalchemy import select, func
from peereval.models import Enrollment, EvaluationAssignment
from peereval.services.assignments import (
    AssignmentRequest, AssignmentRequestError, AssignmentStatus, EvaluatorMode,
    create_assignments, derive_status, list_student_assignments,
)
from peereval.utils.dates import utcnow
from .helpers import add_student, add_course, add_group, enroll, add_members, add_assignment

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _assignment(due, completed_at=None, available_from=None, available_until=None):
    return SimpleNamespace(due_date=due, completed_at=completed_at,
                           available_from=available_from, available_until=available_until)


def test_completed_beats_overdue():
    assignment = _assignment(NOW - timedelta(days=2), completed_at=NOW - timedelta(days=1))
    assert derive_status(assignment, NOW) == AssignmentStatus.COMPLETED


def test_overdue_beats_window():
    assignment = _assignment(NOW - timedelta(hours=1), available_until=NOW - timedelta(hours=2))
    assert derive_status(assignment, NOW) == AssignmentStatus.OVERDUE


def test_not_available_before_window_opens():
    assignment = _assignment(NOW + timedelta(days=5), available_from=NOW + timedelta(days=1))
    assert derive_status(assignment, NOW) == AssignmentStatus.NOT_AVAILABLE


def test_expired_after_window_closes():
    assignment = _assignment(NOW + timedelta(days=5), available_until=NOW - timedelta(minutes=1))
    assert derive_status(assignment, NOW) == AssignmentStatus.EXPIRED


def test_pending_inside_window():
    assignment = _assignment(NOW + timedelta(days=5), available_from=NOW - timedelta(days=1),
                             available_until=NOW + timedelta(days=1))
    assert derive_status(assignment, NOW) == AssignmentStatus.PENDING


def test_naive_datetimes_are_read_as_utc():
    assignment = _assignment(datetime(2026, 3, 1, 11, 0))
    assert derive_status(assignment, NOW) == AssignmentStatus.OVERDUE


@pytest.fixture
async def course_with_group(session):
    course = await add_course(session)
    group = await add_group(session, "Team 1")
    students = [await add_student(session, name) for name in ("Ann", "Ben", "Cat")]
    await enroll(session, course, *students)
    await add_members(session, course, group, *students)
    await session.commit()
    return course, group, students


async def _assignment_count(session):
    return (await session.execute(select(func.count(EvaluationAssignment.id)))).scalar()


@pytest.mark.asyncio
async def test_partial_success_creates_the_rest(session, course_with_group):
    course, group, students = course_with_group
    await add_assignment(session, course, group, students[0])
    await session.commit()

    result = await create_assignments(session, AssignmentRequest(
        course_id=course.id,
        group_ids=[group.id],
        evaluator_ids=[s.id for s in students],
        due_date=utcnow() + timedelta(days=3),
    ))

    assert result.succeeded
    assert len(result.created) == 2
    assert len(result.errors) == 1
    assert "already exists" in result.errors[0]
    assert await _assignment_count(session) == 3


@pytest.mark.asyncio
async def test_total_failure_persists_nothing(session, course_with_group):
    course, group, students = course_with_group
    for student in students:
        await add_assignment(session, course, group, student)
    await session.commit()

    result = await create_assignments(session, AssignmentRequest(
        course_id=course.id,
        group_ids=[group.id],
        evaluator_ids=[s.id for s in students] + [9999],
        due_date=utcnow() + timedelta(days=3),
    ))

    assert not result.succeeded
    assert len(result.errors) == 4
    assert await _assignment_count(session) == 3


@pytest.mark.asyncio
async def test_group_mode_uses_course_members(session, course_with_group):
    course, group, students = course_with_group

    result = await create_assignments(session, AssignmentRequest(
        course_id=course.id,
        group_ids=[group.id],
        due_date=utcnow() + timedelta(days=3),
    ))

    assert sorted(a["evaluator_student_id"] for a in result.created) == sorted(s.id for s in students)
    assert all(a["status"] == "pending" for a in result.created)


@pytest.mark.asyncio
async def test_everyone_mode_targets_every_group_in_course(session, course_with_group):
    course, group, students = course_with_group
    other = await add_group(session, "Team 2")
    dan = await add_student(session, "Dan")
    await enroll(session, course, dan)
    await add_members(session, course, other, dan)
    await session.commit()

    result = await create_assignments(session, AssignmentRequest(
        course_id=course.id,
        mode=EvaluatorMode.EVERYONE,
        due_date=utcnow() + timedelta(days=3),
    ))

    # four enrolled students times two groups
    assert len(result.created) == 8
    assert result.errors == []


@pytest.mark.asyncio
async def test_explicit_evaluator_is_auto_enrolled(session, course_with_group):
    course, group, _ = course_with_group
    outsider = await add_student(session, "Outsider")
    await session.commit()

    result = await create_assignments(session, AssignmentRequest(
        course_id=course.id,
        group_ids=[group.id],
        evaluator_ids=[outsider.id],
        due_date=utcnow() + timedelta(days=3),
    ))

    assert len(result.created) == 1
    enrolled = await session.execute(
        select(func.count(Enrollment.id)).filter(Enrollment.course_id == course.id,
                                                 Enrollment.student_id == outsider.id)
    )
    assert enrolled.scalar() == 1


@pytest.mark.asyncio
async def test_unknown_course_and_group_are_rejected(session, course_with_group):
    course, group, _ = course_with_group
    # the failed call rolls back and expires loaded objects
    course_id, group_id = course.id, group.id

    with pytest.raises(AssignmentRequestError) as excinfo:
        await create_assignments(session, AssignmentRequest(
            course_id=9999, group_ids=[group_id], due_date=utcnow()))
    assert excinfo.value.status_code == 404

    with pytest.raises(AssignmentRequestError) as excinfo:
        await create_assignments(session, AssignmentRequest(
            course_id=course_id, group_ids=[group_id, 9999], due_date=utcnow()))
    assert excinfo.value.status_code == 404

    with pytest.raises(AssignmentRequestError) as excinfo:
        await create_assignments(session, AssignmentRequest(
            course_id=course_id, group_ids=[group_id], due_date=None))
    assert excinfo.value.status_code == 400


@pytest.mark.asyncio
async def test_student_listing_order(session, course_with_group):
    course, group, students = course_with_group
    other = await add_group(session, "Team 2")
    third = await add_group(session, "Team 3")
    ann = students[0]
    await add_assignment(session, course, group, ann, due_in=timedelta(days=2),
                         completed_at=utcnow() - timedelta(hours=1))
    await add_assignment(session, course, other, ann, due_in=timedelta(days=5))
    await add_assignment(session, course, third, ann, due_in=timedelta(days=-1))
    await session.commit()

    listing = await list_student_assignments(session, ann.id)

    assert [a["status"] for a in listing] == ["overdue", "pending", "completed"]
    assert [a["group_name"] for a in listing] == ["Team 3", "Team 2", "Team 1"]


@pytest.mark.asyncio
async def test_create_assignments_endpoint(client):
    course = (await client.post("/api/courses", json={
        "courseName": "Compilers", "semester": "Fall 2026", "userName": "aho",
    })).json()["course"]
    await client.post(f"/api/courses/{course['id']}/upload-roster", files={
        "csvFile": ("roster.csv", b"studentname\nAnn\nBen\nCat\n", "text/csv"),
    })
    group = (await client.post(f"/api/courses/{course['id']}/groups", json={"groupName": "Team 1"})).json()["group"]
    roster = (await client.get(f"/api/courses/{course['id']}/roster")).json()["roster"]
    ids = [row["student_id"] for row in roster]

    payload = {
        "courseId": course["id"],
        "groupId": group["id"],
        "evaluatorStudentIds": ids[:1],
        "dueDate": (utcnow() + timedelta(days=7)).isoformat(),
        "assignmentName": "Midterm review",
        "points": 10,
    }
    first = await client.post("/api/evaluation-assignments", json=payload)
    assert first.status_code == 201

    payload["evaluatorStudentIds"] = ids
    partial = await client.post("/api/evaluation-assignments", json=payload)
    assert partial.status_code == 201
    assert len(partial.json()["assignments"]) == 2
    assert len(partial.json()["errors"]) == 1

    failed = await client.post("/api/evaluation-assignments", json=payload)
    assert failed.status_code == 400
    assert failed.json()["message"] == "Failed to create any assignments"
    assert len(failed.json()["errors"]) == 3

    missing_due = await client.post("/api/evaluation-assignments", json={
        "courseId": course["id"], "groupId": group["id"], "evaluatorStudentIds": ids,
    })
    assert missing_due.status_code == 400

    listing = (await client.get(f"/api/courses/{course['id']}/evaluation-assignments")).json()["assignments"]
    assert len(listing) == 3
    assert [a["evaluator_name"] for a in listing] == ["Ann", "Ben", "Cat"]

    assignment_id = listing[0]["id"]
    assert (await client.patch(f"/api/evaluation-assignments/{assignment_id}/complete")).status_code == 200
    listing = (await client.get(f"/api/courses/{course['id']}/evaluation-assignments")).json()["assignments"]
    assert listing[0]["status"] == "completed"

    assert (await client.delete(f"/api/evaluation-assignments/{assignment_id}")).status_code == 200
    assert (await client.delete(f"/api/evaluation-assignments/{assignment_id}")).status_code == 404
    assert (await client.patch(f"/api/evaluation-assignments/{assignment_id}/complete")).status_code == 404
