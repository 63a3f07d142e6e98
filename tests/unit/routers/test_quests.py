"""Quest endpoint tests, including the full hire and settle flow over HTTP."""

from __future__ import annotations

import pytest

from tests.helpers import as_user

GIVER = "u-giver"
QUESTER = "u-quester"
OTHER = "u-other"


@pytest.fixture
async def open_quest(client, member, quest_body):
    """An open quest posted by GIVER with pending applications from QUESTER and OTHER."""
    await member(GIVER)
    await member(QUESTER)
    await member(OTHER)
    response = await client.post("/quests", json=quest_body, headers=as_user(GIVER))
    assert response.status_code == 201, response.text
    quest_id = response.json()["quest"]["quest_id"]

    applied = await client.post(f"/quests/{quest_id}/apply", headers=as_user(QUESTER))
    other = await client.post(f"/quests/{quest_id}/apply", headers=as_user(OTHER))
    return quest_id, applied.json()["application_id"], other.json()["application_id"]


async def _hire(client, quest_id: str, application_id: str, applicant_id: str = QUESTER):
    return await client.post(
        f"/quests/{quest_id}/hire",
        json={"application_id": application_id, "applicant_id": applicant_id},
        headers=as_user(GIVER),
    )


async def _balance(client, user_id: str) -> str:
    response = await client.get(f"/users/{user_id}", headers=as_user(user_id))
    return response.json()["wallet_balance"]


@pytest.mark.unit
async def test_post_quest(client, member, quest_body):
    """POST /quests returns 201 with the stored quest."""
    await member(GIVER)

    response = await client.post("/quests", json=quest_body, headers=as_user(GIVER))

    assert response.status_code == 201
    data = response.json()
    assert data["quests_posted"] == 1
    quest = data["quest"]
    assert quest["quest_id"].startswith("q-")
    assert quest["status"] == "open"
    assert quest["price"] == "1200.00"
    assert quest["escrow_amount"] == "0.00"
    assert quest["schedule"] == "Saturday morning"
    assert quest["location"]["address"] == "12 Rizal St, Manila"


@pytest.mark.unit
async def test_pending_user_cannot_post(client, quest_body):
    await client.post("/users", json={"name": "New"}, headers=as_user("u-new"))

    response = await client.post("/quests", json=quest_body, headers=as_user("u-new"))

    assert response.status_code == 403
    assert response.json()["error"] == "USER_NOT_APPROVED"


@pytest.mark.unit
@pytest.mark.parametrize("price", ["0", "-5.00", "12.345", 12.5, "abc"])
async def test_post_quest_invalid_price(client, member, quest_body, price):
    await member(GIVER)

    response = await client.post(
        "/quests", json={**quest_body, "price": price}, headers=as_user(GIVER)
    )

    assert response.status_code == 400
    assert response.json()["error"] in ("INVALID_PRICE", "INVALID_AMOUNT")


@pytest.mark.unit
async def test_post_in_person_quest_without_location(client, member, quest_body):
    await member(GIVER)
    body = {key: value for key, value in quest_body.items() if key != "location"}

    response = await client.post("/quests", json=body, headers=as_user(GIVER))

    assert response.status_code == 400
    assert response.json()["error"] == "LOCATION_REQUIRED"


@pytest.mark.unit
async def test_post_quest_bad_location(client, member, quest_body):
    await member(GIVER)

    response = await client.post(
        "/quests",
        json={**quest_body, "location": {"address": "x", "lat": 200, "lng": 0}},
        headers=as_user(GIVER),
    )

    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_LOCATION"


@pytest.mark.unit
async def test_browse_filters_and_sorts(client, member, quest_body):
    await member(GIVER)
    for title, price, work_type in [
        ("Cheap online", "100.00", "online"),
        ("Pricey visit", "900.00", "in-person"),
        ("Middle online", "500.00", "online"),
    ]:
        body = {**quest_body, "title": title, "price": price, "work_type": work_type}
        await client.post("/quests", json=body, headers=as_user(GIVER))

    response = await client.get(
        "/quests?work_type=online&sort=price-desc", headers=as_user(QUESTER)
    )
    assert response.status_code == 200
    assert [q["title"] for q in response.json()["quests"]] == ["Middle online", "Cheap online"]

    response = await client.get("/quests?max_price=500.00&sort=price-asc", headers=as_user(QUESTER))
    assert [q["price"] for q in response.json()["quests"]] == ["100.00", "500.00"]

    response = await client.get("/quests?sort=price-asc&limit=1", headers=as_user(QUESTER))
    assert [q["title"] for q in response.json()["quests"]] == ["Cheap online"]


@pytest.mark.unit
async def test_browse_rejects_unknown_sort(client):
    response = await client.get("/quests?sort=random", headers=as_user(QUESTER))

    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_PARAMETER"


@pytest.mark.unit
async def test_browse_rejects_bad_limit(client):
    response = await client.get("/quests?limit=0", headers=as_user(QUESTER))

    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_PARAMETER"


@pytest.mark.unit
async def test_paused_quest_hidden_from_browse(client, open_quest):
    quest_id, _, _ = open_quest

    response = await client.post(f"/quests/{quest_id}/toggle-pause", headers=as_user(GIVER))
    assert response.json()["status"] == "paused"

    browse = await client.get("/quests", headers=as_user(QUESTER))
    assert browse.json()["quests"] == []
    mine = await client.get("/quests/mine", headers=as_user(GIVER))
    assert [q["quest_id"] for q in mine.json()["quests"]] == [quest_id]


@pytest.mark.unit
async def test_get_unknown_quest(client):
    response = await client.get("/quests/q-missing", headers=as_user(QUESTER))

    assert response.status_code == 404
    assert response.json()["error"] == "QUEST_NOT_FOUND"


@pytest.mark.unit
async def test_apply_twice_conflicts(client, open_quest):
    quest_id, _, _ = open_quest

    response = await client.post(f"/quests/{quest_id}/apply", headers=as_user(QUESTER))

    assert response.status_code == 409
    assert response.json()["error"] == "ALREADY_APPLIED"


@pytest.mark.unit
async def test_giver_lists_quest_applications(client, open_quest):
    quest_id, application_id, other_id = open_quest

    response = await client.get(f"/quests/{quest_id}/applications", headers=as_user(GIVER))

    assert response.status_code == 200
    ids = {a["application_id"] for a in response.json()["applications"]}
    assert ids == {application_id, other_id}

    forbidden = await client.get(f"/quests/{quest_id}/applications", headers=as_user(QUESTER))
    assert forbidden.status_code == 403


@pytest.mark.unit
async def test_hire_complete_flow(client, open_quest):
    """Hire escrows the price, completion pays it to the quester."""
    quest_id, application_id, other_id = open_quest

    response = await _hire(client, quest_id, application_id)

    assert response.status_code == 200
    data = response.json()
    assert data["wallet_balance"] == "3800.00"
    assert data["quest"]["status"] == "in-progress"
    assert data["quest"]["escrow_amount"] == "1200.00"
    assert data["application"]["status"] == "hired"
    assert data["rejected_application_ids"] == [other_id]

    response = await client.post(
        f"/quests/{quest_id}/complete",
        json={"hired_applicant_id": QUESTER, "hired_application_id": application_id},
        headers=as_user(GIVER),
    )

    assert response.status_code == 200
    data = response.json()
    assert data["payout"] == "1200.00"
    assert data["quest"]["status"] == "completed"
    assert data["quest"]["escrow_amount"] == "0.00"
    assert data["application"]["status"] == "completed"
    assert await _balance(client, QUESTER) == "6200.00"
    assert await _balance(client, GIVER) == "3800.00"

    giver = (await client.get(f"/users/{GIVER}", headers=as_user(GIVER))).json()
    assert giver["quests_given_completed"] == 1


@pytest.mark.unit
async def test_hire_with_insufficient_funds(client, member, quest_body):
    await member(GIVER)
    await member(QUESTER)
    body = {**quest_body, "price": "6000.00"}
    quest_id = (await client.post("/quests", json=body, headers=as_user(GIVER))).json()["quest"][
        "quest_id"
    ]
    application_id = (
        await client.post(f"/quests/{quest_id}/apply", headers=as_user(QUESTER))
    ).json()["application_id"]

    response = await _hire(client, quest_id, application_id)

    assert response.status_code == 402
    data = response.json()
    assert data["error"] == "INSUFFICIENT_FUNDS"
    assert await _balance(client, GIVER) == "5000.00"


@pytest.mark.unit
async def test_second_hire_rejected(client, open_quest):
    quest_id, application_id, other_id = open_quest
    await _hire(client, quest_id, application_id)

    response = await _hire(client, quest_id, other_id, OTHER)

    assert response.status_code == 409
    assert response.json()["error"] == "QUEST_NOT_OPEN"
    assert await _balance(client, GIVER) == "3800.00"


@pytest.mark.unit
async def test_hire_missing_fields(client, open_quest):
    quest_id, application_id, _ = open_quest

    response = await client.post(
        f"/quests/{quest_id}/hire",
        json={"application_id": application_id},
        headers=as_user(GIVER),
    )

    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_PAYLOAD"


@pytest.mark.unit
async def test_cancel_hire_refunds_and_reopens(client, open_quest):
    quest_id, application_id, _ = open_quest
    await _hire(client, quest_id, application_id)

    response = await client.post(
        f"/quests/{quest_id}/cancel-hire",
        json={
            "application_id": application_id,
            "escrow_amount": "1200.00",
            "hired_applicant_id": QUESTER,
        },
        headers=as_user(GIVER),
    )

    assert response.status_code == 200
    data = response.json()
    assert data["refund"] == "1200.00"
    assert data["wallet_balance"] == "5000.00"
    assert data["quest"]["status"] == "open"
    assert data["quest"]["hired_applicant_id"] is None
    assert data["application"]["status"] == "rejected"


@pytest.mark.unit
async def test_cancel_hire_escrow_mismatch(client, open_quest):
    quest_id, application_id, _ = open_quest
    await _hire(client, quest_id, application_id)

    response = await client.post(
        f"/quests/{quest_id}/cancel-hire",
        json={"application_id": application_id, "escrow_amount": "99.00"},
        headers=as_user(GIVER),
    )

    assert response.status_code == 409
    assert response.json()["error"] == "ESCROW_MISMATCH"
    assert await _balance(client, GIVER) == "3800.00"


@pytest.mark.unit
async def test_delete_open_quest(client, open_quest):
    quest_id, application_id, other_id = open_quest

    response = await client.delete(f"/quests/{quest_id}", headers=as_user(GIVER))

    assert response.status_code == 200
    data = response.json()
    assert data["deleted"] is True
    assert sorted(data["rejected_application_ids"]) == sorted([application_id, other_id])
    assert (await client.get(f"/quests/{quest_id}", headers=as_user(GIVER))).status_code == 404


@pytest.mark.unit
async def test_delete_in_progress_quest_conflicts(client, open_quest):
    quest_id, application_id, _ = open_quest
    await _hire(client, quest_id, application_id)

    response = await client.delete(f"/quests/{quest_id}", headers=as_user(GIVER))

    assert response.status_code == 409
    assert response.json()["error"] == "QUEST_NOT_DELETABLE"


@pytest.mark.unit
async def test_profile_quests_posted_and_completed(client, open_quest, quest_body):
    """GET /users/{id}/quests lists posted quests and quests completed as a quester."""
    quest_id, application_id, _ = open_quest
    second = await client.post(
        "/quests", json={**quest_body, "title": "Paint the gate"}, headers=as_user(GIVER)
    )
    second_id = second.json()["quest"]["quest_id"]
    await _hire(client, quest_id, application_id)
    await client.post(
        f"/quests/{quest_id}/complete",
        json={"hired_applicant_id": QUESTER, "hired_application_id": application_id},
        headers=as_user(GIVER),
    )

    giver = await client.get(f"/users/{GIVER}/quests", headers=as_user(OTHER))
    quester = await client.get(f"/users/{QUESTER}/quests", headers=as_user(OTHER))

    assert giver.status_code == 200
    assert {q["quest_id"] for q in giver.json()["posted"]} == {quest_id, second_id}
    assert giver.json()["completed"] == []
    assert quester.json()["posted"] == []
    assert [q["quest_id"] for q in quester.json()["completed"]] == [quest_id]
    assert quester.json()["completed"][0]["status"] == "completed"


@pytest.mark.unit
@pytest.mark.parametrize("path", ["/quests/mine", "/applications"])
async def test_list_mine_rejects_unknown_status(client, member, path):
    await member(GIVER)

    response = await client.get(f"{path}?status=bogus", headers=as_user(GIVER))

    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_PARAMETER"
    assert response.json()["details"] == {"status": "bogus"}


@pytest.mark.unit
async def test_quest_applications_reject_unknown_status(client, open_quest):
    quest_id, _, _ = open_quest

    response = await client.get(
        f"/quests/{quest_id}/applications?status=bogus", headers=as_user(GIVER)
    )

    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_PARAMETER"


@pytest.mark.unit
async def test_list_mine_filters_by_status(client, open_quest):
    quest_id, _, _ = open_quest

    response = await client.get("/quests/mine?status=in-progress", headers=as_user(GIVER))
    open_response = await client.get("/quests/mine?status=open", headers=as_user(GIVER))

    assert response.json()["quests"] == []
    assert [q["quest_id"] for q in open_response.json()["quests"]] == [quest_id]
