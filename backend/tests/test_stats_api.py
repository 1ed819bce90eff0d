from datetime import datetime, timezone


def log_activity(client, user_id, activity_type, **extra):
    resp = client.post(f"/stats/{user_id}/activity", json={"type": activity_type, **extra})
    assert resp.status_code == 200
    return resp.json()


def test_new_user_stats_are_created(client):
    resp = client.get("/stats/fresh-user")
    assert resp.status_code == 200
    stats = resp.json()

    assert stats["user_id"] == "fresh-user"
    assert stats["total_xp"] == 0
    assert stats["current_streak"] == 0
    assert stats["level"] == 1
    assert stats["week_start_date"] is not None


def test_activity_awards_reward_table_xp(client):
    data = log_activity(client, "user-1", "notes_generated", notebook_id="nb-1")

    assert data["xp_earned"] == 100
    assert data["new_level"] == 2
    assert data["stats"]["topics_learned"] == 1
    assert data["stats"]["weekly_topics"] == 1
    assert data["stats"]["current_streak"] == 1
    assert data["stats"]["longest_streak"] == 1


def test_activity_with_explicit_amount(client):
    log_activity(client, "user-1", "source_added")
    data = log_activity(client, "user-1", "notebook_created", xp_amount=300)

    assert data["xp_earned"] == 300
    assert data["stats"]["total_xp"] == 325
    assert data["new_level"] == 3
    # Same day: streak unchanged
    assert data["stats"]["current_streak"] == 1


def test_unknown_activity_type_rejected(client):
    resp = client.post("/stats/user-1/activity", json={"type": "levelled_up"})
    assert resp.status_code == 422


def test_activity_calendar(client):
    log_activity(client, "user-1", "source_added")
    log_activity(client, "user-1", "flashcard_studied")
    log_activity(client, "user-2", "source_added")

    data = client.get("/stats/user-1/activity-calendar").json()["activity_data"]
    today = datetime.now(timezone.utc).date().isoformat()
    assert data == [{"date": today, "count": 2}]


def test_activity_calendar_for_unknown_user(client):
    resp = client.get("/stats/nobody/activity-calendar", params={"weeks": 4})
    assert resp.status_code == 200
    assert resp.json() == {"activity_data": []}
