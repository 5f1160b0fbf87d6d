"""Username availability and category listing tests"""

import pytest


@pytest.mark.parametrize("username", ["ab", "has space", "dash-name", "x" * 31])
def test_rejects_bad_usernames(client, username):
    response = client.post("/api/users/check-username", json={"username": username})

    assert response.status_code == 400
    assert response.get_json()["error"] == "Invalid username format"


def test_available_username(client):
    body = client.post("/api/users/check-username", json={"username": "satoshi_21"}).get_json()

    assert body["available"] is True
    assert body["message"] == "Username is available"


def test_taken_username_is_case_insensitive(client, make_user):
    make_user(username="vitalik")

    body = client.post("/api/users/check-username", json={"username": "Vitalik"}).get_json()

    assert body["available"] is False
    assert body["message"] == "Username is already taken"


def test_missing_body(client):
    response = client.post("/api/users/check-username", data="not json")
    assert response.status_code == 400


def test_categories_are_seeded_and_active_only(client):
    from app import Category, DEFAULT_CATEGORIES, db

    body = client.get("/api/categories").get_json()
    assert len(body["categories"]) == len(DEFAULT_CATEGORIES)

    Category.query.filter_by(slug="dao").first().is_active = False
    db.session.commit()

    slugs = {c["slug"] for c in client.get("/api/categories").get_json()["categories"]}
    assert "dao" not in slugs
    assert "smart-contracts" in slugs


def test_seeding_is_idempotent():
    from app import Category, DEFAULT_CATEGORIES, seed_default_categories

    seed_default_categories()

    assert Category.query.count() == len(DEFAULT_CATEGORIES)
