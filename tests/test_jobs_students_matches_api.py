from backend.app.models.cv import CV
from backend.app.models.job_match import JobMatch


def test_creating_job_triggers_background_recalculation(client, db_session, make_student, make_employer, token_for):
    student = make_student(skills="Python, SQL")
    employer = make_employer()
    headers = token_for(employer.user_id, "employer")

    r = client.post(
        "/jobs",
        json={"title": "Data Intern", "required_skills": ["Python", "SQL"], "preferred_skills": "Tableau"},
        headers=headers,
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["job"]["required_skills"] == ["Python", "SQL"]
    task_id = body["recalculation_task_id"]
    assert task_id

    # TestClient runs background tasks before returning the response.
    r = client.get(f"/matches/recalculations/{task_id}", headers=headers)
    assert r.status_code == 200
    task = r.json()["task"]
    assert task["status"] == "done"
    assert task["result"]["created"] == 1

    match = db_session.query(JobMatch).filter(JobMatch.student_id == student.id).one()
    assert match.match_score == 70.0


def test_recalculation_status_is_private_to_owner(client, make_employer, token_for):
    employer = make_employer()
    r = client.post("/jobs", json={"title": "Ops Intern"}, headers=token_for(employer.user_id, "employer"))
    task_id = r.json()["recalculation_task_id"]

    other = make_employer()
    r = client.get(f"/matches/recalculations/{task_id}", headers=token_for(other.user_id, "employer"))
    assert r.status_code == 404
    assert r.json()["code"] == "not_found"


def test_students_cannot_create_jobs(client, make_student, token_for):
    student = make_student()
    r = client.post("/jobs", json={"title": "Nope"}, headers=token_for(student.user_id, "student"))
    assert r.status_code == 403


def test_reactivating_job_recalculates_and_soft_delete_hides_it(client, db_session, make_student, make_job, token_for):
    student = make_student(skills="Go")
    job = make_job(required="Go", preferred=None, active=False)
    headers = token_for(job.employer.user_id, "employer")

    r = client.patch(f"/jobs/{job.id}", json={"active": True}, headers=headers)
    assert r.status_code == 200
    assert r.json()["recalculation_task_id"]
    assert db_session.query(JobMatch).filter(JobMatch.student_id == student.id).count() == 1

    r = client.patch(f"/jobs/{job.id}", json={"title": "Go Intern"}, headers=headers)
    assert r.json()["recalculation_task_id"] is None

    r = client.delete(f"/jobs/{job.id}", headers=headers)
    assert r.status_code == 200
    student_headers = token_for(student.user_id, "student")
    listed = client.get("/jobs", headers=student_headers).json()["jobs"]
    assert job.id not in [j["id"] for j in listed]
    assert client.get(f"/jobs/{job.id}", headers=student_headers).status_code == 404
    # Matches survive the soft delete.
    assert db_session.query(JobMatch).filter(JobMatch.job_id == job.id).count() == 1


def test_only_owner_can_update_job(client, make_job, make_employer, token_for):
    job = make_job()
    intruder = make_employer()
    r = client.patch(f"/jobs/{job.id}", json={"title": "Hijacked"}, headers=token_for(intruder.user_id, "employer"))
    assert r.status_code == 403


def test_profile_update_recalculates_for_student(client, db_session, make_student, make_job, token_for):
    student = make_student(skills="Java")
    job = make_job(required="Python", preferred=None)
    headers = token_for(student.user_id, "student")

    r = client.patch("/students/me", json={"skills": ["Python"], "phone": "+63 911"}, headers=headers)
    assert r.status_code == 200, r.text
    assert r.json()["student"]["skills"] == ["Python"]
    assert r.json()["student"]["phone"] == "+63 911"
    assert r.json()["student"]["university"] == "UP Diliman"

    match = db_session.query(JobMatch).filter(JobMatch.student_id == student.id, JobMatch.job_id == job.id).one()
    assert match.match_score == 70.0


def test_setting_active_cv_keeps_a_single_active(client, db_session, make_student, token_for):
    student = make_student()
    headers = token_for(student.user_id, "student")
    first_cv_id = student.active_cv_id

    r = client.post("/students/me/cvs", json={"title": "Second", "make_active": False}, headers=headers)
    assert r.status_code == 201
    second_id = r.json()["cv"]["id"]
    assert r.json()["cv"]["is_active"] is False

    r = client.put(f"/students/me/cvs/{second_id}/active", headers=headers)
    assert r.status_code == 200
    assert r.json()["active_cv_id"] == second_id

    db_session.expire_all()
    active = db_session.query(CV).filter(CV.student_id == student.id, CV.is_active.is_(True)).all()
    assert [c.id for c in active] == [second_id]
    assert first_cv_id != second_id


def test_first_cv_puts_student_into_matching(client, db_session, make_student, make_job, token_for):
    student = make_student(skills="Python", with_cv=False)
    make_job(required="Python", preferred=None)
    headers = token_for(student.user_id, "student")

    r = client.post("/students/me/cvs", json={"title": "My CV"}, headers=headers)
    assert r.status_code == 201
    assert r.json()["cv"]["is_active"] is True
    assert r.json()["recalculation_task_id"]
    assert db_session.query(JobMatch).filter(JobMatch.student_id == student.id).count() == 1


def test_matches_listing_and_viewed_flag(client, db_session, make_student, make_job, token_for):
    student = make_student(skills="Python")
    job = make_job(required="Python")
    db_session.add(JobMatch(student_id=student.id, job_id=job.id, match_score=70.0))
    db_session.commit()
    headers = token_for(student.user_id, "student")

    matches = client.get("/matches", headers=headers).json()["matches"]
    assert len(matches) == 1
    assert matches[0]["viewed"] is False

    r = client.post(f"/matches/{matches[0]['id']}/viewed", headers=headers)
    assert r.status_code == 200
    assert r.json()["match"]["viewed"] is True

    other = make_student()
    r = client.post(f"/matches/{matches[0]['id']}/viewed", headers=token_for(other.user_id, "student"))
    assert r.status_code == 404


def test_ranked_candidates_orders_by_score(client, db_session, make_student, make_job, token_for):
    low = make_student(skills="SQL")
    high = make_student(skills="Python, SQL")
    job = make_job(required="Python, SQL", preferred=None)
    db_session.add_all(
        [
            JobMatch(student_id=low.id, job_id=job.id, match_score=35.0),
            JobMatch(student_id=high.id, job_id=job.id, match_score=70.0),
        ]
    )
    db_session.commit()

    r = client.get(f"/jobs/{job.id}/ranked_candidates", headers=token_for(job.employer.user_id, "employer"))
    assert r.status_code == 200
    ids = [c["student"]["id"] for c in r.json()["candidates"]]
    assert ids == [high.id, low.id]
