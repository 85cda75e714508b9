from datetime import timedelta
import pytest
from peereval.models import Evaluation, EvaluationTarget
from peereval.utils.calculations import calculate_dashboard
from peereval.utils.dates import utcnow
from .helpers import add_student, add_course, add_group, enroll, add_members, add_assignment


async def _token(client, username, role):
    await client.post("/api/signup", json={
        "username": username, "email": f"{username}@uni.edu", "password": "secret1", "role": role,
    })
    login = await client.post("/api/login", json={"username": username, "password": "secret1"})
    return login.json()["access_token"]


@pytest.mark.asyncio
async def test_dashboard_figures(session):
    course = await add_course(session, semester="Fall 2026")
    group = await add_group(session, "Blue")
    ann = await add_student(session, "Ann")
    ben = await add_student(session, "Ben")
    await add_student(session, "Cat")
    await enroll(session, course, ann, ben)
    await add_members(session, course, group, ann, ben)
    await add_assignment(session, course, group, ann, completed_at=utcnow() - timedelta(hours=1))
    await add_assignment(session, course, group, ben)

    evaluation = Evaluation(evaluator_id=ann.id, submitted_at=utcnow())
    session.add(evaluation)
    await session.flush()
    session.add(EvaluationTarget(evaluation_id=evaluation.id, evaluatee_id=ben.id, contribution_score=4,
                                 plan_mgmt_score=4, team_climate_score=4, conflict_res_score=4,
                                 overall_rating=4))
    await session.commit()

    dashboard = await calculate_dashboard(session)

    assert dashboard["totalEvaluations"] == 1
    assert dashboard["overallAverageScore"] == 4.0
    assert dashboard["totalStudents"] == 3
    assert dashboard["submissionRate"] == {"submitted": 1, "total": 3, "percentage": 33.3}
    assert dashboard["completionRate"] == {"completed": 1, "total": 2, "percentage": 50.0}
    assert dashboard["studentScores"] == [
        {"studentId": ben.id, "studentName": "Ben", "averageScore": 4.0, "evaluationCount": 1}
    ]
    assert dashboard["studentsPerGroup"][0]["studentCount"] == 2
    assert dashboard["assignmentsPerGroup"][0]["assignmentCount"] == 2
    assert dashboard["professorStats"][0]["courseCount"] == 1
    assert dashboard["professorStats"][0]["studentCount"] == 2
    assert dashboard["evaluationsPerProfessor"][0]["scheduledCount"] == 2
    assert dashboard["evaluationsPerSemester"] == [{"semester": "Fall 2026", "scheduledCount": 2}]


@pytest.mark.asyncio
async def test_empty_dashboard(session):
    dashboard = await calculate_dashboard(session)
    assert dashboard["overallAverageScore"] is None
    assert dashboard["submissionRate"]["percentage"] == 0.0
    assert dashboard["studentScores"] == []


@pytest.mark.asyncio
async def test_dashboard_requires_professor(client):
    assert (await client.get("/api/analytics/dashboard")).status_code in (401, 403)

    student_token = await _token(client, "stud", "student")
    forbidden = await client.get("/api/analytics/dashboard", headers={"Authorization": f"Bearer {student_token}"})
    assert forbidden.status_code == 403

    professor_token = await _token(client, "prof", "professor")
    allowed = await client.get("/api/analytics/dashboard", headers={"Authorization": f"Bearer {professor_token}"})
    assert allowed.status_code == 200
    assert allowed.json()["totalEvaluations"] == 0
