"""End-to-end API tests: transactions, milestones, conveyancer invites and party invites."""

from unittest.mock import AsyncMock, patch

import pytest

from documove.domain.enums import Party
from documove.services.party_invitation import PartyInvitationService


@pytest.fixture(autouse=True)
def no_emails():
    with patch(
        "documove.services.conveyancer_assignment.send_conveyancer_invite", new_callable=AsyncMock
    ), patch("documove.services.party_invitation.send_party_invite", new_callable=AsyncMock):
        yield


@pytest.fixture
async def actors(make_profile, auth_headers):
    agent = await make_profile(role="agent", full_name="Alex Agent")
    conveyancer = await make_profile(role="conveyancer", full_name="Priya Shah")
    return {
        "agent": auth_headers(agent.id),
        "conveyancer": auth_headers(conveyancer.id),
    }


async def _create(api_client, headers, **body):
    payload = {
        "address_line1": "14 Mill Lane",
        "postcode": "BS1 4DJ",
        "seller_name": "Sarah Seller",
        "seller_email": "sarah@example.co.uk",
    }
    payload.update(body)
    resp = await api_client.post("/api/transactions", json=payload, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


# ---------------------------------------------------------------------------
# Health and auth
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_health(api_client):
    resp = await api_client.get("/health")
    assert resp.json() == {"status": "ok", "service": "documove"}


@pytest.mark.asyncio
async def test_missing_token(api_client):
    resp = await api_client.get("/api/transactions")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_garbage_token(api_client):
    resp = await api_client.get("/api/transactions", headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_unknown_actor_falls_back_to_agent(api_client, auth_headers):
    resp = await api_client.post(
        "/api/transactions", json={"address_line1": "1 High St"}, headers=auth_headers("ghost")
    )
    assert resp.status_code == 201


# ---------------------------------------------------------------------------
# Transactions and milestones
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_and_view(api_client, actors):
    body = await _create(api_client, actors["agent"])
    assert body["reference_number"].startswith("DM-")
    assert body["progress_percentage"] == 0
    assert body["current_milestone"] == "Instruction Received"
    assert body["allowed_actions"] == ["Confirm instruction"]
    assert body["milestones"][0]["status"] == "current"
    assert body["milestones"][0]["can_complete"] is True
    assert {p["party"]: p["state"] for p in body["parties"]} == {
        "seller": "not_invited",
        "buyer": "not_invited",
    }

    resp = await api_client.get(f"/api/transactions/{body['id']}", headers=actors["conveyancer"])
    assert resp.status_code == 200
    assert resp.json()["allowed_actions"] == []


@pytest.mark.asyncio
async def test_conveyancer_cannot_create(api_client, actors):
    resp = await api_client.post(
        "/api/transactions", json={"address_line1": "1 High St"}, headers=actors["conveyancer"]
    )
    assert resp.status_code == 403
    assert resp.json()["detail"]["code"] == "permission_denied"


@pytest.mark.asyncio
async def test_milestone_flow(api_client, actors):
    txn = await _create(api_client, actors["agent"])
    base = f"/api/transactions/{txn['id']}/milestones"

    resp = await api_client.post(f"{base}/0/complete", headers=actors["agent"])
    assert resp.status_code == 200
    assert resp.json()["current_stage"] == "Instruction Received"

    resp = await api_client.post(f"{base}/2/complete", headers=actors["agent"])
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "out_of_order_transition"

    resp = await api_client.post(f"{base}/1/complete", headers=actors["conveyancer"])
    assert resp.status_code == 403
    assert resp.json()["detail"]["code"] == "permission_denied"

    resp = await api_client.post(f"{base}/1/complete", headers=actors["agent"])
    assert resp.status_code == 200

    resp = await api_client.post(f"{base}/2/complete", headers=actors["conveyancer"])
    body = resp.json()
    assert body["current_stage"] == "ID Verification"
    assert body["progress_percentage"] == 30

    resp = await api_client.get(f"/api/transactions/{txn['id']}/timeline", headers=actors["agent"])
    events = [e["event_type"] for e in resp.json()]
    assert events == ["created"] + ["milestone_completed"] * 3


@pytest.mark.asyncio
async def test_unknown_transaction(api_client, actors):
    resp = await api_client.get("/api/transactions/missing", headers=actors["agent"])
    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "not_found"


@pytest.mark.asyncio
async def test_list_mine(api_client, actors, auth_headers, make_profile):
    other = await make_profile(role="agent")
    await _create(api_client, actors["agent"])
    await _create(api_client, auth_headers(other.id), transaction_type="acting_for_buyer")

    resp = await api_client.get("/api/transactions?mine=true", headers=actors["agent"])
    assert len(resp.json()) == 1
    resp = await api_client.get(
        "/api/transactions?transaction_type=acting_for_buyer", headers=actors["agent"]
    )
    assert [t["transaction_type"] for t in resp.json()] == ["acting_for_buyer"]


# ---------------------------------------------------------------------------
# Conveyancers
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_directory_search(api_client, actors, make_conveyancer):
    await make_conveyancer(firm_name="Harbour Law", town="Bristol", rating=4.8)
    await make_conveyancer(firm_name="Avon Conveyancing", town="Bath", rating=4.9)

    resp = await api_client.get("/api/conveyancers?q=bris", headers=actors["agent"])
    assert [c["firm_name"] for c in resp.json()] == ["Harbour Law"]

    resp = await api_client.get("/api/conveyancers", headers=actors["agent"])
    assert [c["firm_name"] for c in resp.json()] == ["Avon Conveyancing", "Harbour Law"]


@pytest.mark.asyncio
async def test_invite_and_respond(api_client, actors, make_conveyancer):
    txn = await _create(api_client, actors["agent"])
    firm = await make_conveyancer()
    invites = f"/api/transactions/{txn['id']}/conveyancer-invites"

    resp = await api_client.post(invites, json={"conveyancer_id": firm.id}, headers=actors["agent"])
    assert resp.status_code == 201
    invite = resp.json()
    assert invite["status"] == "pending"
    assert invite["is_current"] is True

    respond = f"/api/conveyancer-invites/{invite['id']}/respond"
    resp = await api_client.post(respond, json={"decision": "accept"}, headers=actors["agent"])
    assert resp.status_code == 403

    resp = await api_client.post(respond, json={"decision": "accept"}, headers=actors["conveyancer"])
    assert resp.json()["status"] == "accepted"

    resp = await api_client.post(respond, json={"decision": "decline"}, headers=actors["conveyancer"])
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "invalid_transition"

    resp = await api_client.get(f"/api/transactions/{txn['id']}", headers=actors["agent"])
    assert resp.json()["conveyancer_invite"]["status"] == "accepted"


@pytest.mark.asyncio
async def test_external_invite_supersedes(api_client, actors, make_conveyancer):
    txn = await _create(api_client, actors["agent"])
    firm = await make_conveyancer()
    invites = f"/api/transactions/{txn['id']}/conveyancer-invites"

    await api_client.post(invites, json={"conveyancer_id": firm.id}, headers=actors["agent"])
    resp = await api_client.post(
        invites,
        json={"firm_name": "Kernow Law", "email": "desk@kernowlaw.co.uk"},
        headers=actors["agent"],
    )
    external = resp.json()

    resp = await api_client.get(f"{invites}/current", headers=actors["agent"])
    assert resp.json()["id"] == external["id"]

    resp = await api_client.get(invites, headers=actors["agent"])
    assert [i["is_current"] for i in resp.json()] == [True, False]


@pytest.mark.asyncio
async def test_invite_body_validation(api_client, actors):
    txn = await _create(api_client, actors["agent"])
    resp = await api_client.post(
        f"/api/transactions/{txn['id']}/conveyancer-invites",
        json={"firm_name": "No Email LLP"},
        headers=actors["agent"],
    )
    assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Party invites
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_party_invite_flow(api_client, actors):
    txn = await _create(api_client, actors["agent"])
    url = f"/api/transactions/{txn['id']}/parties/seller/invite"

    resp = await api_client.post(url, headers=actors["agent"])
    assert resp.status_code == 200
    seller = next(p for p in resp.json()["parties"] if p["party"] == "seller")
    assert seller["state"] == "invited"

    resp = await api_client.post(url, headers=actors["agent"])
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "already_invited"

    resp = await api_client.post(
        f"/api/transactions/{txn['id']}/parties/buyer/invite", headers=actors["agent"]
    )
    assert resp.status_code == 422
    assert resp.json()["detail"]["code"] == "missing_contact"


@pytest.mark.asyncio
async def test_public_invite_lookup(api_client, actors, db_session):
    txn = await _create(api_client, actors["agent"])
    invite = await PartyInvitationService(db_session, notify=False).invite(txn["id"], Party.SELLER)

    resp = await api_client.get(f"/api/invites/{invite.token}")
    assert resp.status_code == 200
    assert resp.json()["reference_number"] == txn["reference_number"]

    resp = await api_client.get("/api/invites/unknown")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_accept_party_invite(api_client, actors, auth_headers, db_session):
    txn = await _create(api_client, actors["agent"])
    invite = await PartyInvitationService(db_session, notify=False).invite(txn["id"], Party.SELLER)
    await db_session.commit()
    accept = f"/api/invites/{invite.token}/accept"

    resp = await api_client.post(accept)
    assert resp.status_code == 401

    resp = await api_client.post(accept, headers=auth_headers("seller-account"))
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "accepted"
    assert body["transaction_id"] == txn["id"]

    resp = await api_client.get(f"/api/invites/{invite.token}")
    assert resp.status_code == 404

    resp = await api_client.post(accept, headers=auth_headers("someone-else"))
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "invalid_transition"

    resp = await api_client.get(f"/api/transactions/{txn['id']}", headers=actors["agent"])
    seller = next(p for p in resp.json()["parties"] if p["party"] == "seller")
    assert seller["state"] == "accepted"
