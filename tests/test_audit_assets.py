import pytest

from api.audit_assets import db_manager
from config import settings
from core.statuses import statuses_equivalent
from db_models.asset import Asset


async def _submit(client, headers, audit_asset_id, **payload):
    return await client.post(
        f"/api/v1/audit-assets/{audit_asset_id}/submit", json=payload, headers=headers
    )


async def _asset(client, headers, audit_asset_id):
    resp = await client.get(f"/api/v1/audit-assets/{audit_asset_id}", headers=headers)
    assert resp.status_code == 200, resp.text
    return resp.json()


@pytest.mark.anyio
async def test_submit_records_status_and_starts_plan(
    async_client, admin_headers, auditor_headers, create_plan, audit_asset_ids
):
    plan_id = (await create_plan())["plan"]["id"]
    ids = await audit_asset_ids(plan_id)

    resp = await _submit(async_client, auditor_headers, ids["PC-002"], status="In Use", notes="Checked")
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["audit_asset"]["current_status"] == "利用中"
    assert body["audit_asset"]["audited_by"] == "Test Auditor"
    assert body["audit_asset"]["audit_status"] is True
    assert body["audit_asset"]["audited_at"] is not None
    assert body["corrective_action_id"] is None
    assert body["changes"]["main_asset_updated"] is True

    resp = await async_client.get(f"/api/v1/audit-plans/{plan_id}", headers=admin_headers)
    assert resp.json()["status"] == "In Progress"


@pytest.mark.anyio
async def test_submit_rejects_unknown_status(async_client, auditor_headers, create_plan, audit_asset_ids):
    ids = await audit_asset_ids((await create_plan())["plan"]["id"])
    resp = await _submit(async_client, auditor_headers, ids["PC-001"], status="Vanished")
    assert resp.status_code == 400
    assert "Invalid status" in resp.json()["detail"]


@pytest.mark.anyio
async def test_submit_unknown_audit_asset(async_client, auditor_headers):
    resp = await _submit(async_client, auditor_headers, 999, status="In Use")
    assert resp.status_code == 404


@pytest.mark.anyio
async def test_viewer_cannot_submit(async_client, viewer_headers, create_plan, audit_asset_ids):
    ids = await audit_asset_ids((await create_plan())["plan"]["id"])
    resp = await _submit(async_client, viewer_headers, ids["PC-001"], status="In Use")
    assert resp.status_code == 403


@pytest.mark.anyio
async def test_discrepancy_raises_one_corrective_action(
    async_client, admin_headers, auditor_headers, create_plan, audit_asset_ids, mailer
):
    ids = await audit_asset_ids((await create_plan())["plan"]["id"])
    mailer.sent.clear()

    resp = await _submit(async_client, auditor_headers, ids["PC-001"], status="Missing", notes="Not at desk")
    assert resp.status_code == 200, resp.text
    action_id = resp.json()["corrective_action_id"]
    assert action_id is not None

    resp = await async_client.get(f"/api/v1/corrective-actions/{action_id}", headers=admin_headers)
    action = resp.json()
    assert action["priority"] == "high"
    assert action["status"] == "pending"
    assert action["assigned_to"] == 2
    assert action["due_date"] == "2025-01-17"
    assert [n["text"] for n in action["notes"]] == ["Not at desk"]
    # Primary assignment goes to the location's auditor
    [assignment] = action["assignments"]
    assert assignment["assigned_to_employee_id"] == 1
    assert assignment["status"] == "pending"

    assert mailer.sent[-1][0] == "bob@example.com"
    assert mailer.sent[-1][1] == "corrective_action"

    # A second discrepancy report while the action is open raises nothing new
    resp = await _submit(async_client, auditor_headers, ids["PC-001"], status="Broken")
    assert resp.json()["corrective_action_id"] is None


@pytest.mark.anyio
async def test_auto_raise_can_be_disabled(monkeypatch, async_client, auditor_headers, create_plan, audit_asset_ids):
    monkeypatch.setattr(settings, "AUTO_RAISE_CORRECTIVE_ACTIONS", False)
    ids = await audit_asset_ids((await create_plan())["plan"]["id"])
    resp = await _submit(async_client, auditor_headers, ids["PC-001"], status="Missing")
    assert resp.status_code == 200, resp.text
    assert resp.json()["corrective_action_id"] is None


@pytest.mark.anyio
async def test_unowned_discrepancy_defaults_to_auditor(
    async_client, admin_headers, auditor_headers, create_plan, audit_asset_ids
):
    ids = await audit_asset_ids((await create_plan())["plan"]["id"])
    resp = await _submit(async_client, auditor_headers, ids["PC-003"], status="Abolished")
    action_id = resp.json()["corrective_action_id"]

    resp = await async_client.get(f"/api/v1/corrective-actions/{action_id}", headers=admin_headers)
    assert resp.json()["assigned_to"] == 1
    assert resp.json()["priority"] == "low"


@pytest.mark.anyio
async def test_reassignment_requires_unassigned_asset(
    async_client, admin_headers, auditor_headers, create_plan, audit_asset_ids
):
    ids = await audit_asset_ids((await create_plan())["plan"]["id"])

    resp = await _submit(async_client, auditor_headers, ids["PC-001"], status="In Use", reassign_user_id=3)
    assert resp.status_code == 409
    detail = await _asset(async_client, admin_headers, ids["PC-001"])
    assert detail["asset"]["user_id"] == 2
    assert detail["audit_asset"]["audited_at"] is None

    resp = await _submit(async_client, auditor_headers, ids["PC-003"], status="In Use", reassign_user_id=3)
    assert resp.status_code == 200, resp.text
    assert resp.json()["changes"]["user_assigned"] is True
    assert resp.json()["changes"]["user_changed"] is True
    detail = await _asset(async_client, admin_headers, ids["PC-003"])
    assert detail["asset"]["user_id"] == 3
    assert detail["audit_asset"]["current_user"] == "Carol Owner"


@pytest.mark.anyio
async def test_reassignment_to_unknown_employee(async_client, auditor_headers, create_plan, audit_asset_ids):
    ids = await audit_asset_ids((await create_plan())["plan"]["id"])
    resp = await _submit(async_client, auditor_headers, ids["PC-003"], status="In Use", reassign_user_id=77)
    assert resp.status_code == 404


@pytest.mark.anyio
@pytest.mark.parametrize(
    "reported, resolved_status",
    [("Missing", "保管中"), ("故障中", "利用中")],
)
async def test_completing_last_action_resolves_asset(
    async_client, admin_headers, auditor_headers, create_plan, audit_asset_ids, reported, resolved_status
):
    ids = await audit_asset_ids((await create_plan())["plan"]["id"])
    resp = await _submit(async_client, auditor_headers, ids["PC-001"], status=reported)
    action_id = resp.json()["corrective_action_id"]

    resp = await async_client.post(
        f"/api/v1/corrective-actions/{action_id}/complete",
        json={"notes": "Sorted out"},
        headers=auditor_headers,
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["status"] == "completed"
    assert resp.json()["completed_date"] == "2025-01-10"

    detail = await _asset(async_client, admin_headers, ids["PC-001"])
    assert detail["audit_asset"]["resolved"] is True
    assert detail["asset"]["status"] == resolved_status
    assert f"Resolution status: {resolved_status}" in detail["audit_asset"]["auditor_notes"]
    # The reported status is kept on the audit record
    assert statuses_equivalent(detail["audit_asset"]["current_status"], reported)


@pytest.mark.anyio
async def test_resolution_waits_for_every_action(
    async_client, admin_headers, auditor_headers, create_plan, audit_asset_ids
):
    ids = await audit_asset_ids((await create_plan())["plan"]["id"])
    resp = await _submit(async_client, auditor_headers, ids["PC-001"], status="Missing")
    first = resp.json()["corrective_action_id"]
    resp = await async_client.post(
        "/api/v1/corrective-actions",
        json={"audit_asset_id": ids["PC-001"], "issue": "Check CCTV", "action": "Review footage"},
        headers=auditor_headers,
    )
    assert resp.status_code == 201, resp.text
    second = resp.json()["id"]

    await async_client.post(f"/api/v1/corrective-actions/{first}/complete", json={}, headers=auditor_headers)
    detail = await _asset(async_client, admin_headers, ids["PC-001"])
    assert detail["audit_asset"]["resolved"] is False

    resp = await async_client.get(f"/api/v1/audit-assets/{ids['PC-001']}/summary", headers=admin_headers)
    summary = resp.json()
    assert summary["corrective_actions_total"] == 2
    assert summary["corrective_actions_completed"] == 1
    assert summary["all_corrective_actions_completed"] is False
    assert summary["resolution_status"] == "保管中"

    await async_client.post(f"/api/v1/corrective-actions/{second}/complete", json={}, headers=auditor_headers)
    detail = await _asset(async_client, admin_headers, ids["PC-001"])
    assert detail["audit_asset"]["resolved"] is True
    assert detail["asset"]["status"] == "保管中"


@pytest.mark.anyio
async def test_resolved_asset_rejects_further_submissions(
    async_client, admin_headers, auditor_headers, create_plan, audit_asset_ids
):
    ids = await audit_asset_ids((await create_plan())["plan"]["id"])
    await _submit(async_client, auditor_headers, ids["PC-002"], status="In Use")
    resp = await async_client.post(f"/api/v1/audit-assets/{ids['PC-002']}/resolve", headers=admin_headers)
    assert resp.status_code == 200, resp.text
    before = await _asset(async_client, admin_headers, ids["PC-002"])

    resp = await _submit(async_client, auditor_headers, ids["PC-002"], status="Missing", notes="late report")
    assert resp.status_code == 409
    after = await _asset(async_client, admin_headers, ids["PC-002"])
    assert after["audit_asset"] == before["audit_asset"]

    resp = await async_client.post(f"/api/v1/audit-assets/{ids['PC-002']}/resolve", headers=admin_headers)
    assert resp.status_code == 409


@pytest.mark.anyio
async def test_resolve_requires_audit(async_client, admin_headers, create_plan, audit_asset_ids):
    ids = await audit_asset_ids((await create_plan())["plan"]["id"])
    resp = await async_client.post(f"/api/v1/audit-assets/{ids['PC-002']}/resolve", headers=admin_headers)
    assert resp.status_code == 409


@pytest.mark.anyio
async def test_resolve_writes_findings_back(
    async_client, admin_headers, auditor_headers, create_plan, audit_asset_ids
):
    ids = await audit_asset_ids((await create_plan())["plan"]["id"])
    await _submit(
        async_client, auditor_headers, ids["PC-003"],
        status="保管中", location="Osaka Branch", notes="Moved with the team",
    )
    resp = await async_client.post(f"/api/v1/audit-assets/{ids['PC-003']}/resolve", headers=admin_headers)
    assert resp.status_code == 200, resp.text

    asset = (await _asset(async_client, admin_headers, ids["PC-003"]))["asset"]
    assert asset["location"] == "Osaka Branch"
    # A relocated asset goes back into use
    assert asset["status"] == "利用中"
    assert asset["notes"].splitlines() == [
        "[Q1 Audit] Moved with the team",
        "[Q1 Audit] Location changed from Tokyo HQ to Osaka Branch",
    ]


@pytest.mark.anyio
async def test_writeback_is_idempotent(
    async_client, admin_headers, auditor_headers, create_plan, audit_asset_ids, session_factory, clock
):
    ids = await audit_asset_ids((await create_plan())["plan"]["id"])
    await _submit(async_client, auditor_headers, ids["PC-001"], status="Missing", notes="Gone")
    resp = await async_client.get("/api/v1/corrective-actions", headers=admin_headers)
    [action] = resp.json()
    await async_client.post(f"/api/v1/corrective-actions/{action['id']}/complete", json={}, headers=auditor_headers)

    async with session_factory() as session:
        audit_asset = await db_manager.get_audit_asset_or_raise(session, ids["PC-001"])
        first = await db_manager.update_main_asset_directly(session, audit_asset, actor="tester", clock=clock)
        await session.commit()
        snapshot = (first.status, first.location, first.user_id, first.notes, first.last_updated)

    clock.advance(hours=1)
    async with session_factory() as session:
        audit_asset = await db_manager.get_audit_asset_or_raise(session, ids["PC-001"])
        second = await db_manager.update_main_asset_directly(session, audit_asset, actor="tester", clock=clock)
        await session.commit()
        assert (second.status, second.location, second.user_id, second.notes, second.last_updated) == snapshot
        assert len(second.notes.splitlines()) == len(snapshot[3].splitlines())


@pytest.mark.anyio
async def test_resolve_user_id(session_factory, seed):
    async with session_factory() as session:
        assert await db_manager.resolve_user_id(session, "Carol Owner") == 3
        assert await db_manager.resolve_user_id(session, " 4 ") == 4
        assert await db_manager.resolve_user_id(session, "Nobody") is None
        assert await db_manager.resolve_user_id(session, "  ") is None


@pytest.mark.anyio
async def test_portal_scenario_missing_asset_ends_in_storage(
    async_client, admin_headers, auditor_headers, create_plan, audit_asset_ids, session_factory, portal_token
):
    async with session_factory() as session:
        session.add(Asset(asset_id="PC-005", type="Phone", location="Osaka Branch", status="利用中", user_id=2))
        await session.commit()

    created = await create_plan(start_date="2025-01-01", due_date="2025-02-01", location_ids=[2], auditor_ids=[1])
    assert created["assignments_created"] == 1
    assert created["audit_assets_created"] == 2
    assert created["plan"]["status"] == "Planning"
    plan_id = created["plan"]["id"]
    ids = await audit_asset_ids(plan_id)

    token = await portal_token("bob@example.com", plan_id)
    resp = await async_client.put(
        f"/api/v1/employee-audits/update-asset/{token}",
        json={"assetId": ids["PC-004"], "status": "Missing"},
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["asset"]["audited_at"] is not None
    assert statuses_equivalent(body["asset"]["current_status"], "Missing")
    action_id = body["corrective_action_id"]

    resp = await async_client.post(
        f"/api/v1/corrective-actions/{action_id}/complete", json={}, headers=auditor_headers
    )
    assert resp.status_code == 200, resp.text

    detail = await _asset(async_client, admin_headers, ids["PC-004"])
    assert detail["asset"]["status"] == "保管中"
    assert detail["audit_asset"]["resolved"] is True


@pytest.mark.anyio
async def test_completed_action_on_resolved_asset_is_final(
    async_client, admin_headers, auditor_headers, create_plan, audit_asset_ids, clock
):
    ids = await audit_asset_ids((await create_plan())["plan"]["id"])
    resp = await _submit(async_client, auditor_headers, ids["PC-001"], status="Missing")
    url = f"/api/v1/corrective-actions/{resp.json()['corrective_action_id']}"
    resp = await async_client.post(f"{url}/complete", json={}, headers=auditor_headers)
    completed = resp.json()
    before = await _asset(async_client, admin_headers, ids["PC-001"])
    assert before["audit_asset"]["resolved"] is True

    clock.advance(days=3)
    resp = await async_client.post(f"{url}/complete", json={"notes": "again"}, headers=auditor_headers)
    assert resp.status_code == 409
    assert "already completed" in resp.json()["detail"]

    resp = await async_client.patch(f"{url}/status", json={"status": "in_progress"}, headers=auditor_headers)
    assert resp.status_code == 409
    assert "resolved" in resp.json()["detail"]

    resp = await async_client.get(url, headers=admin_headers)
    assert resp.json()["status"] == "completed"
    assert resp.json()["completed_date"] == "2025-01-10"
    assert resp.json()["notes"] == completed["notes"]

    after = await _asset(async_client, admin_headers, ids["PC-001"])
    assert after["audit_asset"]["auditor_notes"] == before["audit_asset"]["auditor_notes"]
    assert after["audit_asset"]["resolved"] is True

    # No new open action on a resolved unit either
    resp = await async_client.post(
        "/api/v1/corrective-actions",
        json={"audit_asset_id": ids["PC-001"], "issue": "Late finding", "action": "Check"},
        headers=auditor_headers,
    )
    assert resp.status_code == 409


@pytest.mark.anyio
async def test_writeback_keeps_owner_when_user_name_is_unknown(
    async_client, auditor_headers, create_plan, audit_asset_ids, session_factory, clock
):
    ids = await audit_asset_ids((await create_plan())["plan"]["id"])
    await _submit(async_client, auditor_headers, ids["PC-001"], status="In Use")

    async with session_factory() as session:
        audit_asset = await db_manager.get_audit_asset_or_raise(session, ids["PC-001"])
        audit_asset.current_user = "Somebody Unlisted"
        asset = await db_manager.update_main_asset_directly(session, audit_asset, actor="tester", clock=clock)
        await session.commit()
        asset_pk = asset.id

    async with session_factory() as session:
        asset = await session.get(Asset, asset_pk)
        assert asset.asset_id == "PC-001"
        assert asset.user_id == 2
        assert asset.status == "利用中"
        assert "User changed from Bob Owner to Somebody Unlisted" in asset.notes
        audit_asset = await db_manager.get_audit_asset_or_raise(session, ids["PC-001"])
        assert audit_asset.resolved is True
