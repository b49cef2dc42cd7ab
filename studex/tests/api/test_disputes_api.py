from studex.tests.helpers import auth_headers

CLIENT = auth_headers("client-1", "client")
FREELANCER = auth_headers("freelancer-1", "freelancer")
ADMIN = auth_headers("admin-1", "admin")


def in_progress_contract(client, amount=25_000):
    client.post("/api/v1/accounts/me/deposit", json={"amount": 50_000}, headers=CLIENT)
    cid = client.post(
        "/api/v1/contracts",
        json={"freelancerId": "freelancer-1", "amount": amount, "jobTitle": "Website fixes"},
        headers=CLIENT,
    ).json()["contractId"]
    client.post(f"/api/v1/contracts/{cid}/start", headers=FREELANCER)
    return cid


def test_dispute_and_resolve_favor_client(client):
    cid = in_progress_contract(client)

    r = client.post(f"/api/v1/contracts/{cid}/dispute", json={"reason": "Never delivered"}, headers=FREELANCER)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["contract"]["status"] == "disputed"
    did = body["dispute"]["disputeId"]
    assert body["contract"]["disputeId"] == did

    queue = client.get("/api/v1/admin/disputes", headers=ADMIN).json()
    assert [d["disputeId"] for d in queue["items"]] == [did]
    assert client.get("/api/v1/admin/disputes", headers=CLIENT).status_code == 403

    r = client.post(f"/api/v1/disputes/{did}/resolve", json={"resolution": "favor_client"}, headers=ADMIN)
    assert r.status_code == 200, r.text
    assert r.json()["contract"]["status"] == "resolved"
    assert r.json()["dispute"]["resolution"] == "favor_client"
    assert client.get("/api/v1/accounts/me/balance", headers=CLIENT).json()["balance"] == 50_000

    again = client.post(f"/api/v1/disputes/{did}/resolve", json={"resolution": "favor_client"}, headers=ADMIN)
    assert again.status_code == 409
    assert again.json()["code"] == "DisputeAlreadyResolved"


def test_resolve_split(client):
    cid = in_progress_contract(client, amount=10_000)
    did = client.post(
        f"/api/v1/contracts/{cid}/dispute", json={"reason": "Half the pages"}, headers=CLIENT
    ).json()["dispute"]["disputeId"]

    r = client.post(
        f"/api/v1/disputes/{did}/resolve",
        json={"resolution": "split", "clientSharePercent": 25},
        headers=ADMIN,
    )
    assert r.status_code == 200, r.text
    assert client.get("/api/v1/accounts/me/balance", headers=CLIENT).json()["balance"] == 42_500
    assert client.get("/api/v1/accounts/me/balance", headers=FREELANCER).json()["balance"] == 7_500


def test_non_admin_cannot_resolve(client):
    cid = in_progress_contract(client)
    did = client.post(
        f"/api/v1/contracts/{cid}/dispute", json={"reason": "Late"}, headers=CLIENT
    ).json()["dispute"]["disputeId"]

    r = client.post(f"/api/v1/disputes/{did}/resolve", json={"resolution": "favor_client"}, headers=CLIENT)
    assert r.status_code == 403


def test_dispute_on_secured_contract_is_409(client):
    client.post("/api/v1/accounts/me/deposit", json={"amount": 1_000}, headers=CLIENT)
    cid = client.post(
        "/api/v1/contracts",
        json={"freelancerId": "freelancer-1", "amount": 1_000, "jobTitle": "Notes"},
        headers=CLIENT,
    ).json()["contractId"]

    r = client.post(f"/api/v1/contracts/{cid}/dispute", json={"reason": "Too early"}, headers=CLIENT)
    assert r.status_code == 409


def test_get_dispute(client):
    cid = in_progress_contract(client)
    did = client.post(
        f"/api/v1/contracts/{cid}/dispute", json={"reason": "Bad audio"}, headers=CLIENT
    ).json()["dispute"]["disputeId"]

    r = client.get(f"/api/v1/disputes/{did}", headers=FREELANCER)
    assert r.status_code == 200
    assert r.json()["reason"] == "Bad audio"
    assert client.get(f"/api/v1/disputes/{did}", headers=auth_headers("x", "client")).status_code == 403


def test_admin_lists_contracts_by_status(client):
    cid = in_progress_contract(client)

    r = client.get("/api/v1/admin/contracts?status=work_in_progress", headers=ADMIN)
    assert r.status_code == 200
    assert [c["contractId"] for c in r.json()["items"]] == [cid]

    assert client.get("/api/v1/admin/contracts?status=bogus", headers=ADMIN).status_code == 400
    assert client.get("/api/v1/admin/contracts?status=secured", headers=CLIENT).status_code == 403


def test_contract_movements_show_hold_and_split_legs(client):
    cid = in_progress_contract(client, amount=1_000)
    did = client.post(
        f"/api/v1/contracts/{cid}/dispute", json={"reason": "Partial"}, headers=CLIENT
    ).json()["dispute"]["disputeId"]
    client.post(f"/api/v1/disputes/{did}/resolve", json={"resolution": "split"}, headers=ADMIN)

    r = client.get(f"/api/v1/contracts/{cid}/movements", headers=CLIENT)
    assert r.status_code == 200
    trail = sorted((m["reason"], m["amount"]) for m in r.json()["items"])
    assert trail == [("ESCROW_HOLD", -1_000), ("ESCROW_REFUND", 500), ("ESCROW_RELEASE", 500)]
