import pytest
from sqlalchemy import delete

from config import settings
from db_models.audit_assignment import AuditAssignment
from db_models.employee import Employee

BASE = "/api/v1/employee-audits"


@pytest.mark.anyio
async def test_available_plans(async_client, admin_headers, create_plan, clock):
    plan_id = (await create_plan())["plan"]["id"]
    resp = await async_client.get(f"{BASE}/available-plans")
    assert resp.status_code == 200, resp.text
    assert [p["id"] for p in resp.json()] == [plan_id]

    clock.advance(days=7)  # due date reached
    resp = await async_client.get(f"{BASE}/available-plans")
    assert resp.json() == []


@pytest.mark.anyio
async def test_request_access_emails_link(async_client, create_plan, mailer):
    plan_id = (await create_plan())["plan"]["id"]
    mailer.sent.clear()

    resp = await async_client.post(
        f"{BASE}/request-access", json={"email": "BOB@example.com", "audit_plan_id": plan_id}
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["email_sent"] is True
    assert body["access_url"] is None
    assert body["expires_at"].startswith("2025-01-10T09:15:00")

    [(template, data)] = mailer.to("bob@example.com")
    assert template == "audit_access"
    assert data["access_url"].startswith("http://portal.test/employee-audits/access/")


@pytest.mark.anyio
async def test_failed_access_email_returns_link(async_client, create_plan, mailer):
    plan_id = (await create_plan())["plan"]["id"]
    mailer.fail_for.add("bob@example.com")

    resp = await async_client.post(
        f"{BASE}/request-access", json={"email": "bob@example.com", "audit_plan_id": plan_id}
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["email_sent"] is False
    token = body["access_url"].rsplit("/", 1)[-1]

    resp = await async_client.get(f"{BASE}/access/{token}")
    assert resp.status_code == 200, resp.text


@pytest.mark.anyio
async def test_request_access_rejections(async_client, admin_headers, create_plan, session_factory):
    plan_id = (await create_plan())["plan"]["id"]
    async with session_factory() as session:
        session.add(Employee(name="Erin Outsider", email="erin@example.com"))
        await session.commit()

    resp = await async_client.post(
        f"{BASE}/request-access", json={"email": "nobody@example.com", "audit_plan_id": plan_id}
    )
    assert resp.status_code == 404

    resp = await async_client.post(
        f"{BASE}/request-access", json={"email": "bob@example.com", "audit_plan_id": 999}
    )
    assert resp.status_code == 404

    resp = await async_client.post(
        f"{BASE}/request-access", json={"email": "erin@example.com", "audit_plan_id": plan_id}
    )
    assert resp.status_code == 403

    for status in ("In Progress", "Completed"):
        await async_client.patch(
            f"/api/v1/audit-plans/{plan_id}/status", json={"status": status}, headers=admin_headers
        )
    resp = await async_client.post(
        f"{BASE}/request-access", json={"email": "bob@example.com", "audit_plan_id": plan_id}
    )
    assert resp.status_code == 403
    assert "not active" in resp.json()["detail"]


@pytest.mark.anyio
async def test_access_without_assignments_needs_flag(
    monkeypatch, async_client, create_plan, session_factory
):
    plan_id = (await create_plan())["plan"]["id"]
    async with session_factory() as session:
        session.add(Employee(name="Erin Outsider", email="erin@example.com"))
        await session.execute(delete(AuditAssignment).where(AuditAssignment.audit_plan_id == plan_id))
        await session.commit()
    payload = {"email": "erin@example.com", "audit_plan_id": plan_id}

    resp = await async_client.post(f"{BASE}/request-access", json=payload)
    assert resp.status_code == 403

    monkeypatch.setattr(settings, "ALLOW_ACCESS_WITHOUT_ASSIGNMENTS", True)
    resp = await async_client.post(f"{BASE}/request-access", json=payload)
    assert resp.status_code == 200, resp.text


@pytest.mark.anyio
async def test_owner_sees_own_assets_and_auditor_sees_location(async_client, create_plan, portal_token):
    plan_id = (await create_plan())["plan"]["id"]

    resp = await async_client.get(f"{BASE}/access/{await portal_token('bob@example.com', plan_id)}")
    assert resp.status_code == 200, resp.text
    view = resp.json()
    assert view["employee_name"] == "Bob Owner"
    assert view["is_auditor"] is False
    assert [a["asset_id"] for a in view["assets"]] == ["PC-001"]

    resp = await async_client.get(f"{BASE}/access/{await portal_token('alice@example.com', plan_id)}")
    view = resp.json()
    assert view["is_auditor"] is True
    assert [a["asset_id"] for a in view["assets"]] == ["PC-001", "PC-002", "PC-003"]


@pytest.mark.anyio
async def test_token_expires_by_wall_clock(async_client, create_plan, portal_token, clock):
    plan_id = (await create_plan())["plan"]["id"]
    token = await portal_token("bob@example.com", plan_id)

    clock.advance(minutes=14)
    resp = await async_client.get(f"{BASE}/access/{token}")
    assert resp.status_code == 200, resp.text

    clock.advance(minutes=1)
    resp = await async_client.get(f"{BASE}/access/{token}")
    assert resp.status_code == 401
    assert "expired" in resp.json()["detail"]

    resp = await async_client.get(f"{BASE}/access/not-a-token")
    assert resp.status_code == 401


@pytest.mark.anyio
async def test_employee_updates_own_asset(
    async_client, admin_headers, create_plan, audit_asset_ids, portal_token
):
    plan_id = (await create_plan())["plan"]["id"]
    ids = await audit_asset_ids(plan_id)
    token = await portal_token("bob@example.com", plan_id)

    resp = await async_client.put(
        f"{BASE}/update-asset/{token}",
        json={"assetId": ids["PC-001"], "status": "In Use", "notes": "On my desk"},
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["asset"]["current_status"] == "利用中"
    assert body["asset"]["auditor_notes"] == "On my desk"
    assert body["corrective_action_id"] is None

    resp = await async_client.get(f"/api/v1/audit-assets/{ids['PC-001']}", headers=admin_headers)
    assert resp.json()["audit_asset"]["audited_by"] == "Bob Owner"

    # Someone else's asset is out of reach
    resp = await async_client.put(
        f"{BASE}/update-asset/{token}", json={"assetId": ids["PC-002"], "status": "In Use"}
    )
    assert resp.status_code == 403


@pytest.mark.anyio
async def test_auditor_reassigns_unowned_asset(
    async_client, admin_headers, create_plan, audit_asset_ids, portal_token
):
    plan_id = (await create_plan())["plan"]["id"]
    ids = await audit_asset_ids(plan_id)
    token = await portal_token("alice@example.com", plan_id)

    resp = await async_client.put(
        f"{BASE}/update-asset/{token}",
        json={"assetId": ids["PC-003"], "status": "In Use", "reassignUserId": 3},
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["changes"]["user_assigned"] is True

    resp = await async_client.put(
        f"{BASE}/update-asset/{token}",
        json={"assetId": ids["PC-001"], "status": "In Use", "reassignUserId": 3},
    )
    assert resp.status_code == 409


@pytest.mark.anyio
async def test_resolved_asset_is_locked_for_employees(
    async_client, admin_headers, create_plan, audit_asset_ids, portal_token
):
    plan_id = (await create_plan())["plan"]["id"]
    ids = await audit_asset_ids(plan_id)
    token = await portal_token("bob@example.com", plan_id)

    await async_client.put(f"{BASE}/update-asset/{token}", json={"assetId": ids["PC-001"], "status": "In Use"})
    resp = await async_client.post(f"/api/v1/audit-assets/{ids['PC-001']}/resolve", headers=admin_headers)
    assert resp.status_code == 200, resp.text

    resp = await async_client.put(
        f"{BASE}/update-asset/{token}", json={"assetId": ids["PC-001"], "status": "Missing"}
    )
    assert resp.status_code == 409

    resp = await async_client.get(f"/api/v1/audit-assets/{ids['PC-001']}", headers=admin_headers)
    assert resp.json()["audit_asset"]["current_status"] == "利用中"


@pytest.mark.anyio
async def test_employee_works_own_corrective_actions(
    async_client, create_plan, audit_asset_ids, portal_token
):
    plan_id = (await create_plan())["plan"]["id"]
    ids = await audit_asset_ids(plan_id)
    bob = await portal_token("bob@example.com", plan_id)
    carol = await portal_token("carol@example.com", plan_id)

    resp = await async_client.put(
        f"{BASE}/update-asset/{bob}", json={"assetId": ids["PC-001"], "status": "Broken"}
    )
    action_id = resp.json()["corrective_action_id"]
    assert action_id is not None

    resp = await async_client.get(f"{BASE}/corrective-actions/{bob}")
    assert resp.status_code == 200, resp.text
    assert [a["id"] for a in resp.json()["actions"]] == [action_id]

    resp = await async_client.get(f"{BASE}/corrective-actions/{carol}")
    assert resp.json()["actions"] == []

    resp = await async_client.put(
        f"{BASE}/corrective-actions/{carol}/{action_id}", json={"status": "in_progress"}
    )
    assert resp.status_code == 403

    resp = await async_client.put(
        f"{BASE}/corrective-actions/{bob}/{action_id}", json={"status": "in_progress", "notes": "Called IT"}
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["status"] == "in_progress"
    assert body["notes"][-1]["text"] == "Status changed from pending to in_progress by Bob Owner: Called IT"
