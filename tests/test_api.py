from __future__ import annotations


def test_health_and_request_id(api_client) -> None:
    r = api_client.get("/api/health", headers={"X-Request-Id": "req_test_123"})
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
    assert r.headers["X-Request-Id"] == "req_test_123"

    ready = api_client.get("/api/ready")
    assert ready.status_code == 200
    assert ready.json()["db"]["ok"] is True


def test_auth_is_required(api_client) -> None:
    r = api_client.get("/api/profile/me")
    assert r.status_code == 401
    assert r.headers.get("X-Request-Id")

    bad = api_client.get("/api/profile/me", headers={"Authorization": "Bearer nope"})
    assert bad.status_code == 401


def test_profile_is_created_on_first_visit(api_client, auth_headers) -> None:
    headers = auth_headers()
    r = api_client.get("/api/profile/me", headers=headers)
    assert r.status_code == 200
    body = r.json()
    assert body["xp"] == 0
    assert body["level"] == 1
    assert body["streak"] == 0
    assert body["badges"] == []
    assert body["personality"] is None


def test_quiz_flow_over_http(api_client, auth_headers) -> None:
    headers = auth_headers()
    r = api_client.post(
        "/api/quizzes/budgeting_101/attempts",
        json={"score": 10, "total_questions": 10, "time_taken": 60},
        headers=headers,
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["xp_earned"] == 150
    assert body["perfect_score"] is True
    assert body["replayed"] is False

    stats = api_client.get("/api/quizzes/budgeting_101/stats", headers=headers).json()
    assert stats["total_attempts"] == 1
    assert stats["perfect_attempts"] == 1

    me = api_client.get("/api/profile/me", headers=headers).json()
    assert me["xp"] == 150
    assert me["streak"] == 1
    assert "badge_first_quiz" in me["badges"]


def test_personality_quiz_is_single_attempt(api_client, auth_headers) -> None:
    headers = auth_headers()
    early = api_client.post("/api/challenges/0/claim", headers=headers)
    assert early.status_code == 409

    payload = {"score": 0, "total_questions": 3, "time_taken": 20, "answers": ["C", "C", "A"]}
    first = api_client.post(
        "/api/quizzes/financial_personality/attempts", json=payload, headers=headers
    ).json()
    again = api_client.post(
        "/api/quizzes/financial_personality/attempts",
        json={**payload, "answers": ["A", "A", "A"]},
        headers=headers,
    ).json()

    assert first["personality_type"] == "strategic"
    assert first["xp_earned"] == 500
    assert again["replayed"] is True
    assert again["personality_type"] == "strategic"
    assert again["xp_total"] == 500

    me = api_client.get("/api/profile/me", headers=headers).json()
    assert me["personality"]["type"] == "strategic"
    assert me["personality"]["color"] == "#4CAF50"

    claim = api_client.post("/api/challenges/0/claim", headers=headers).json()
    assert claim["already_completed"] is True
    assert claim["xp_awarded"] == 0
    assert claim["xp_total"] == 500
    today = api_client.get("/api/challenges/today", headers=headers).json()
    assert [c["id"] for c in today["challenges"] if c["completed"]] == [0]


def test_invalid_score_maps_to_400(api_client, auth_headers) -> None:
    r = api_client.post(
        "/api/quizzes/q/attempts",
        json={"score": 11, "total_questions": 10},
        headers=auth_headers(),
    )
    assert r.status_code == 400
    assert r.json()["code"] == "invalid_input"
    assert r.headers.get("X-Request-Id")


def test_challenges_over_http(api_client, auth_headers) -> None:
    headers = auth_headers()
    today = api_client.get("/api/challenges/today", headers=headers).json()
    assert [c["id"] for c in today["challenges"]] == [0, 1, 2, 3, 4]
    assert not any(c["completed"] for c in today["challenges"])

    blocked = api_client.post("/api/challenges/4/claim", headers=headers)
    assert blocked.status_code == 409
    assert blocked.json()["code"] == "precondition_not_met"

    claimed = api_client.post("/api/challenges/1/claim", headers=headers).json()
    assert claimed["already_completed"] is False
    assert claimed["xp_awarded"] == 300
    repeat = api_client.post("/api/challenges/1/claim", headers=headers).json()
    assert repeat["already_completed"] is True
    assert repeat["xp_total"] == 300

    unknown = api_client.post("/api/challenges/42/claim", headers=headers)
    assert unknown.status_code == 400

    after = api_client.get("/api/challenges/today", headers=headers).json()
    assert [c["id"] for c in after["challenges"] if c["completed"]] == [1]


def test_daily_streak_unlocks_after_a_passed_lesson_quiz(api_client, auth_headers) -> None:
    headers = auth_headers()
    quiz = api_client.post(
        "/api/quizzes/3/attempts",
        json={"score": 4, "total_questions": 5, "time_taken": 60},
        headers=headers,
    ).json()
    assert quiz["lesson_completed"] is True

    lessons = api_client.get("/api/lessons", headers=headers).json()
    assert [row["id"] for row in lessons if row["completed"]] == ["3"]

    r = api_client.post("/api/challenges/4/claim", headers=headers)
    assert r.status_code == 200, r.text
    assert r.json()["xp_awarded"] == 300

    streak = api_client.get("/api/progress/streak", headers=headers).json()
    assert streak["current_streak"] == 1
    assert streak["total_active_days"] == 1
    assert streak["marked_dates"] == [streak["today"]]


def test_leaderboard_and_metrics(api_client, auth_headers) -> None:
    headers = auth_headers()
    api_client.post("/api/lessons/1/complete", headers=headers)

    rows = api_client.get("/api/leaderboard?sort=xp&limit=5", headers=headers).json()
    assert 1 <= len(rows) <= 5
    assert [r["rank"] for r in rows] == list(range(1, len(rows) + 1))
    assert all(rows[i]["xp"] >= rows[i + 1]["xp"] for i in range(len(rows) - 1))

    by_name = api_client.get("/api/leaderboard?sort=name", headers=headers)
    assert by_name.status_code == 200
    bad = api_client.get("/api/leaderboard?sort=elo", headers=headers)
    assert bad.status_code == 422

    text = api_client.get("/api/metrics").text
    assert "cashwise_http_requests_total" in text
    assert "cashwise_challenge_claims_total" in text
    assert "cashwise_stored_attempts_total" in text


def test_lesson_xp_ignores_the_request_body(api_client, auth_headers) -> None:
    headers = auth_headers()
    r = api_client.post("/api/lessons/2/complete", json={"xp": 10000}, headers=headers)
    assert r.status_code == 200
    assert r.json()["xp_awarded"] == 50
    assert r.json()["xp_total"] == 50

    unknown = api_client.post("/api/lessons/999/complete", headers=headers)
    assert unknown.status_code == 404
    assert unknown.json()["code"] == "not_found"
