import pytest
from peereval.models import ProfessorRecord


async def _create_course(client, **overrides):
    payload = {"courseName": "Algorithms", "semester": "Fall 2026", "classTime": "MWF 10:00",
               "userEmail": "knuth@uni.edu", "userName": "dknuth"}
    payload.update(overrides)
    return await client.post("/api/courses", json=payload)


@pytest.mark.asyncio
async def test_health(client):
    assert (await client.get("/")).json()["status"] == "healthy"
    assert (await client.get("/health")).status_code == 200


@pytest.mark.asyncio
async def test_course_round_trip(client):
    created = await _create_course(client)
    assert created.status_code == 201
    course = created.json()["course"]

    fetched = await client.get(f"/api/courses/{course['id']}")
    assert fetched.status_code == 200
    body = fetched.json()["course"]
    assert body["course_name"] == "Algorithms"
    assert body["semester"] == "Fall 2026"
    assert body["class_time"] == "MWF 10:00"
    assert body["professor_id"] == course["professor_id"]


@pytest.mark.asyncio
async def test_course_creation_reuses_professor(client):
    first = (await _create_course(client)).json()["course"]
    second = (await _create_course(client, courseName="Data Structures")).json()["course"]
    assert first["professor_id"] == second["professor_id"]

    by_id = await client.post("/api/courses", json={
        "courseName": "Seminar", "semester": "Fall 2026", "professorId": first["professor_id"],
    })
    assert by_id.json()["course"]["professor_id"] == first["professor_id"]


@pytest.mark.asyncio
async def test_course_creation_validation(client, database):
    missing = await client.post("/api/courses", json={"courseName": "No Semester"})
    assert missing.status_code == 400

    anonymous = await client.post("/api/courses", json={"courseName": "Orphan", "semester": "Fall 2026"})
    assert anonymous.status_code == 400
    assert "identify professor" in anonymous.json()["message"]

    async with database.session() as session:
        session.add_all([ProfessorRecord(name="Smith"), ProfessorRecord(name="Smith")])
        await session.commit()
    ambiguous = await client.post("/api/courses", json={
        "courseName": "Ambiguous", "semester": "Fall 2026", "userName": "Smith",
    })
    assert ambiguous.status_code == 409
    assert len(ambiguous.json()["candidates"]) == 2


@pytest.mark.asyncio
async def test_unknown_course_is_404(client):
    response = await client.get("/api/courses/12345")
    assert response.status_code == 404
    assert response.json() == {"message": "Course not found"}


@pytest.mark.asyncio
async def test_listings_roster_and_groups(client):
    course = (await _create_course(client)).json()["course"]
    await client.post(f"/api/courses/{course['id']}/upload-roster", files={
        "csvFile": ("r.csv", b"studentname\nAnn\nBen\nCat\n", "text/csv"),
    })
    await client.post("/api/upload-students", files={"csvFile": ("s.csv", b"name\nZed\n", "text/csv")})

    courses = (await client.get("/api/courses")).json()["courses"]
    assert courses[0]["student_count"] == 3
    assert courses[0]["professor_name"] == "dknuth"

    roster = (await client.get(f"/api/courses/{course['id']}/roster")).json()["roster"]
    assert [r["student_name"] for r in roster] == ["Ann", "Ben", "Cat"]
    assert all(r["group_id"] is None for r in roster)
    ids = [r["student_id"] for r in roster]

    blank = await client.post(f"/api/courses/{course['id']}/groups", json={"groupName": "   "})
    assert blank.status_code == 400
    assert (await client.post("/api/courses/999/groups", json={"groupName": "X"})).status_code == 404

    group = (await client.post(f"/api/courses/{course['id']}/groups", json={"groupName": "Red"})).json()["group"]
    students = (await client.get("/api/students", params={"search": "Zed"})).json()["students"]
    outsider_id = students[0]["id"]

    added = await client.post(f"/api/courses/{course['id']}/groups/{group['id']}/students",
                              json={"studentIds": ids[:2] + [outsider_id]})
    assert added.json()["successCount"] == 2
    assert added.json()["skippedCount"] == 1

    repeat = await client.post(f"/api/courses/{course['id']}/groups/{group['id']}/students",
                               json={"studentIds": ids[:2]})
    assert repeat.json()["duplicateCount"] == 2

    groups = (await client.get(f"/api/courses/{course['id']}/groups")).json()["groups"]
    assert groups == [{"id": group["id"], "group_name": "Red", "student_count": 2}]

    members = (await client.get(f"/api/courses/{course['id']}/groups/{group['id']}/students")).json()["students"]
    assert [m["name"] for m in members] == ["Ann", "Ben"]

    removed = await client.delete(f"/api/courses/{course['id']}/groups/{group['id']}/students/{ids[0]}")
    assert removed.status_code == 200
    again = await client.delete(f"/api/courses/{course['id']}/groups/{group['id']}/students/{ids[0]}")
    assert again.status_code == 404


@pytest.mark.asyncio
async def test_professor_listing_and_courses(client):
    await client.post("/api/signup", json={
        "username": "dknuth", "email": "knuth@uni.edu", "password": "secret1", "role": "professor",
    })
    await client.post("/api/signup", json={
        "username": "idle", "email": "idle@uni.edu", "password": "secret1", "role": "professor",
    })
    course = (await _create_course(client)).json()["course"]

    professors = (await client.get("/api/professors")).json()["professors"]
    assert [p["username"] for p in professors] == ["dknuth"]
    assert professors[0]["professor_id"] == course["professor_id"]

    by_username = (await client.get("/api/professors/dknuth/courses")).json()["courses"]
    by_id = (await client.get(f"/api/professors/{course['professor_id']}/courses")).json()["courses"]
    by_email = (await client.get("/api/professors/knuth@uni.edu/courses")).json()["courses"]
    assert [c["id"] for c in by_username] == [course["id"]]
    assert by_id == by_username == by_email

    assert (await client.get("/api/professors/nobody/courses")).json()["courses"] == []


@pytest.mark.asyncio
async def test_student_courses_by_email(client):
    course = (await _create_course(client)).json()["course"]
    await client.post(f"/api/courses/{course['id']}/upload-roster", files={
        "csvFile": ("r.csv", b"studentname\nJane Doe\n", "text/csv"),
    })
    await client.post("/api/signup", json={
        "username": "jdoe", "email": "jane@uni.edu", "password": "secret1",
        "firstName": "Jane", "lastName": "Doe",
    })

    response = await client.get("/api/students/jane@uni.edu/courses")
    assert response.status_code == 200
    body = response.json()
    assert body["student"]["name"] == "Jane Doe"
    assert [c["course_name"] for c in body["courses"]] == ["Algorithms"]

    assert (await client.get("/api/students/ghost@uni.edu/courses")).status_code == 404
    assert (await client.get("/api/students/ghost@uni.edu/evaluation-assignments")).json() == {"assignments": []}


@pytest.mark.asyncio
async def test_similar_professor_usernames_keep_their_own_courses(client):
    first = (await _create_course(client, userEmail="jdoe@uni.edu", userName="jdoe")).json()["course"]
    second = (await _create_course(client, courseName="Compilers", userEmail="jdoe2@uni.edu",
                                   userName="jdoe2")).json()["course"]
    assert first["professor_id"] != second["professor_id"]

    courses = (await client.get("/api/professors/jdoe2@uni.edu/courses")).json()["courses"]
    assert [c["course_name"] for c in courses] == ["Compilers"]
