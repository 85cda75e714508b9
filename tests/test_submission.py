import pytest
from sqlalchemy import select, func
from peereval.models import Evaluation, EvaluationTarget
from peereval.services import submission as submission_service
from peereval.services.submission import EvaluationSubmission, StudentNotFoundError, submit_evaluation
from .helpers import add_student


def _submission(evaluator_id, evaluatee_id, **scores):
    values = dict(contribution_score=4, plan_mgmt_score=3, team_climate_score=5,
                  conflict_res_score=2, overall_rating=4, feedback="Solid teammate")
    values.update(scores)
    return EvaluationSubmission(evaluator_id=evaluator_id, evaluatee_id=evaluatee_id, **values)


async def _counts(session):
    evaluations = (await session.execute(select(func.count(Evaluation.id)))).scalar()
    targets = (await session.execute(select(func.count(EvaluationTarget.id)))).scalar()
    return evaluations, targets


@pytest.fixture
async def pair(session):
    evaluator = await add_student(session, "Eve")
    evaluatee = await add_student(session, "Finn")
    await session.commit()
    return evaluator, evaluatee


@pytest.mark.asyncio
async def test_submit_stores_header_and_target(session, pair):
    evaluator, evaluatee = pair

    evaluation = await submit_evaluation(session, _submission(evaluator.id, evaluatee.id))
    assert evaluation.evaluator_id == evaluator.id
    assert evaluation.submitted_at is not None

    target = (await session.execute(
        select(EvaluationTarget).filter(EvaluationTarget.evaluation_id == evaluation.id)
    )).scalar_one()
    assert target.evaluatee_id == evaluatee.id
    assert target.team_climate_score == 5
    assert target.feedback == "Solid teammate"
    assert await _counts(session) == (1, 1)


@pytest.mark.asyncio
async def test_failed_target_insert_leaves_no_header(session, pair, monkeypatch):
    evaluator, evaluatee = pair

    async def broken_insert(*args, **kwargs):
        raise RuntimeError("target insert failed")

    monkeypatch.setattr(submission_service, "_insert_target", broken_insert)

    with pytest.raises(RuntimeError):
        await submit_evaluation(session, _submission(evaluator.id, evaluatee.id))

    assert await _counts(session) == (0, 0)


@pytest.mark.asyncio
async def test_out_of_range_score_rejected_before_writing(session, pair):
    evaluator, evaluatee = pair

    with pytest.raises(ValueError):
        await submit_evaluation(session, _submission(evaluator.id, evaluatee.id, overall_rating=6))
    with pytest.raises(ValueError):
        await submit_evaluation(session, _submission(evaluator.id, evaluatee.id, plan_mgmt_score=-1))

    assert await _counts(session) == (0, 0)


@pytest.mark.asyncio
async def test_boundary_scores_accepted(session, pair):
    evaluator, evaluatee = pair
    await submit_evaluation(session, _submission(evaluator.id, evaluatee.id, contribution_score=0, overall_rating=5))
    assert await _counts(session) == (1, 1)


@pytest.mark.asyncio
async def test_unknown_evaluatee(session, pair):
    evaluator, _ = pair
    with pytest.raises(StudentNotFoundError):
        await submit_evaluation(session, _submission(evaluator.id, 9999))
    assert await _counts(session) == (0, 0)


@pytest.mark.asyncio
async def test_submit_and_teammates_endpoints(client):
    course = (await client.post("/api/courses", json={
        "courseName": "Operating Systems", "semester": "Fall 2026", "userEmail": "tanen@uni.edu",
    })).json()["course"]
    await client.post(f"/api/courses/{course['id']}/upload-roster", files={
        "csvFile": ("roster.csv", b"name\nGus\nHana\nIvy\n", "text/csv"),
    })
    group = (await client.post(f"/api/courses/{course['id']}/groups", json={"groupName": "Kernel"})).json()["group"]
    roster = (await client.get(f"/api/courses/{course['id']}/roster")).json()["roster"]
    ids = {row["student_name"]: row["student_id"] for row in roster}
    added = await client.post(f"/api/courses/{course['id']}/groups/{group['id']}/students",
                              json={"studentIds": list(ids.values())})
    assert added.json()["successCount"] == 3

    signup = await client.post("/api/signup", json={
        "username": "gus", "email": "gus@uni.edu", "password": "secret1",
    })
    assert signup.status_code == 201

    teammates = await client.get("/api/teammates", params={
        "courseId": course["id"], "groupId": group["id"], "studentEmail": "gus@uni.edu",
    })
    assert teammates.status_code == 200
    body = teammates.json()
    assert body["evaluatorId"] == ids["Gus"]
    assert [t["name"] for t in body["teammates"]] == ["Hana", "Ivy"]

    assert (await client.get("/api/teammates", params={"courseId": course["id"]})).status_code == 400
    unknown = await client.get("/api/teammates", params={
        "courseId": course["id"], "groupId": group["id"], "studentEmail": "ghost@uni.edu",
    })
    assert unknown.status_code == 404

    payload = {
        "evaluatorId": ids["Gus"], "teammateId": ids["Hana"], "feedback": "Great",
        "contribution_score": 5, "plan_mgmt_score": 4, "team_climate_score": 5,
        "conflict_res_score": 3, "overall_rating": 5,
    }
    submitted = await client.post("/api/submit-evaluation", json=payload)
    assert submitted.status_code == 201
    assert submitted.json()["message"] == "Evaluation submitted successfully"
    assert isinstance(submitted.json()["evaluationId"], int)

    payload["overall_rating"] = 9
    rejected = await client.post("/api/submit-evaluation", json=payload)
    assert rejected.status_code == 400
    assert "errors" in rejected.json()

    payload["overall_rating"] = 5
    payload["teammateId"] = 9999
    assert (await client.post("/api/submit-evaluation", json=payload)).status_code == 404
