import pytest
from sqlalchemy import delete

from db_models.audit_assignment import AuditAssignment


@pytest.fixture
def raise_action(async_client, auditor_headers, create_plan, audit_asset_ids):
    """Create the default plan and a corrective action on one of its assets."""

    async def _raise(tag="PC-001", **overrides):
        plan_id = (await create_plan())["plan"]["id"]
        ids = await audit_asset_ids(plan_id)
        payload = {
            "audit_asset_id": ids[tag],
            "issue": f"{tag} label unreadable",
            "action": "Print a new asset label",
        }
        payload.update(overrides)
        resp = await async_client.post("/api/v1/corrective-actions", json=payload, headers=auditor_headers)
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _raise


@pytest.mark.anyio
async def test_create_binds_primary_assignment_and_notifies(raise_action, mailer):
    action = await raise_action(assigned_to=3, priority="critical", due_date="2025-01-20", notes="Urgent")
    assert action["status"] == "pending"
    assert action["priority"] == "critical"
    assert action["assigned_to"] == 3
    assert [n["text"] for n in action["notes"]] == ["Urgent"]
    [assignment] = action["assignments"]
    assert assignment["assigned_to_employee_id"] == 1
    assert assignment["audit_assignment_id"] is not None

    template, data = mailer.to("carol@example.com")[-1]
    assert template == "corrective_action"
    assert data["action"]["id"] == action["id"]
    assert data["action"]["asset_id"] == "PC-001"


@pytest.mark.anyio
async def test_create_validates_input(async_client, auditor_headers, create_plan, audit_asset_ids):
    ids = await audit_asset_ids((await create_plan())["plan"]["id"])

    resp = await async_client.post(
        "/api/v1/corrective-actions",
        json={"audit_asset_id": 999, "issue": "x", "action": "y"},
        headers=auditor_headers,
    )
    assert resp.status_code == 404

    resp = await async_client.post(
        "/api/v1/corrective-actions",
        json={"audit_asset_id": ids["PC-001"], "issue": "x", "action": "y", "assigned_to": 55},
        headers=auditor_headers,
    )
    assert resp.status_code == 404

    resp = await async_client.post(
        "/api/v1/corrective-actions",
        json={"audit_asset_id": ids["PC-001"], "issue": "", "action": "y"},
        headers=auditor_headers,
    )
    assert resp.status_code == 422


@pytest.mark.anyio
async def test_status_change_is_mirrored_onto_assignments(async_client, auditor_headers, raise_action):
    action = await raise_action()
    url = f"/api/v1/corrective-actions/{action['id']}/status"

    resp = await async_client.patch(url, json={"status": "in_progress", "notes": "On it"}, headers=auditor_headers)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["status"] == "in_progress"
    assert body["notes"][-1]["text"] == "Status changed from pending to in_progress by Test Auditor: On it"
    [assignment] = body["assignments"]
    assert assignment["status"] == "in_progress"
    assert assignment["started_at"] is not None
    assert assignment["completed_at"] is None

    resp = await async_client.patch(url, json={"status": "completed"}, headers=auditor_headers)
    body = resp.json()
    assert body["completed_date"] == "2025-01-10"
    assert body["assignments"][0]["status"] == "completed"
    assert body["assignments"][0]["completed_at"] is not None

    # Reopening clears the completion
    resp = await async_client.patch(url, json={"status": "pending"}, headers=auditor_headers)
    body = resp.json()
    assert body["status"] == "pending"
    assert body["completed_date"] is None
    assert body["assignments"][0]["status"] == "pending"
    assert body["assignments"][0]["completed_at"] is None


@pytest.mark.anyio
async def test_past_due_action_reopens_as_overdue(async_client, auditor_headers, raise_action):
    action = await raise_action(due_date="2025-01-05")
    resp = await async_client.patch(
        f"/api/v1/corrective-actions/{action['id']}/status",
        json={"status": "in_progress"},
        headers=auditor_headers,
    )
    assert resp.json()["status"] == "overdue"


@pytest.mark.anyio
async def test_assignment_status_goes_through_action(async_client, auditor_headers, raise_action):
    action = await raise_action()
    assignment_id = action["assignments"][0]["id"]

    resp = await async_client.patch(
        f"/api/v1/corrective-actions/assignments/{assignment_id}",
        json={"status": "in_progress", "progress_note": "Ordered labels"},
        headers=auditor_headers,
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["status"] == "in_progress"
    assert [n["text"] for n in body["progress_notes"]] == ["Ordered labels"]

    resp = await async_client.get(f"/api/v1/corrective-actions/{action['id']}", headers=auditor_headers)
    assert resp.json()["status"] == "in_progress"


@pytest.mark.anyio
async def test_extra_assignments(async_client, admin_headers, auditor_headers, raise_action):
    action = await raise_action()
    url = f"/api/v1/corrective-actions/{action['id']}/assignments"

    resp = await async_client.post(url, json={"employee_id": 2, "notes": "Help out"}, headers=auditor_headers)
    assert resp.status_code == 201, resp.text
    assignment_id = resp.json()["id"]
    assert resp.json()["status"] == "pending"

    resp = await async_client.post(url, json={"employee_id": 2}, headers=auditor_headers)
    assert resp.status_code == 409

    resp = await async_client.patch(
        f"/api/v1/corrective-actions/{action['id']}/status",
        json={"status": "in_progress"},
        headers=auditor_headers,
    )
    assert {a["status"] for a in resp.json()["assignments"]} == {"in_progress"}

    resp = await async_client.delete(
        f"/api/v1/corrective-actions/assignments/{assignment_id}", headers=admin_headers
    )
    assert resp.status_code == 204
    resp = await async_client.get(f"/api/v1/corrective-actions/{action['id']}", headers=admin_headers)
    assert len(resp.json()["assignments"]) == 1


@pytest.mark.anyio
async def test_update_corrective_action(async_client, auditor_headers, raise_action):
    action = await raise_action()
    resp = await async_client.put(
        f"/api/v1/corrective-actions/{action['id']}",
        json={"priority": "low", "assigned_to": 3, "note": "Handed to Carol"},
        headers=auditor_headers,
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["priority"] == "low"
    assert body["assigned_to"] == 3
    assert body["notes"][-1]["text"] == "Handed to Carol"


@pytest.mark.anyio
async def test_bulk_update_reports_each_id(async_client, admin_headers, auditor_headers, raise_action):
    first = await raise_action()
    resp = await async_client.post(
        "/api/v1/corrective-actions",
        json={"audit_asset_id": first["audit_asset_id"], "issue": "Second", "action": "Check"},
        headers=auditor_headers,
    )
    second = resp.json()

    resp = await async_client.post(
        "/api/v1/corrective-actions/bulk-status",
        json={"ids": [first["id"], 999, second["id"]], "status": "in_progress", "notes": "batch"},
        headers=auditor_headers,
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["updated"] == 2
    assert body["failed"] == 1
    assert [(r["id"], r["success"]) for r in body["results"]] == [
        (first["id"], True),
        (999, False),
        (second["id"], True),
    ]
    assert "not found" in body["results"][1]["message"]

    resp = await async_client.get(
        "/api/v1/corrective-actions", params={"status": "in_progress"}, headers=admin_headers
    )
    assert {a["id"] for a in resp.json()} == {first["id"], second["id"]}


@pytest.mark.anyio
async def test_overdue_sweep(async_client, admin_headers, raise_action):
    action = await raise_action(due_date="2025-01-09")

    resp = await async_client.get("/api/v1/corrective-actions/overdue", headers=admin_headers)
    assert [a["id"] for a in resp.json()] == [action["id"]]

    resp = await async_client.post("/api/v1/corrective-actions/mark-overdue", headers=admin_headers)
    assert resp.status_code == 200, resp.text
    assert resp.json()["marked_overdue"] == 1

    resp = await async_client.get(f"/api/v1/corrective-actions/{action['id']}", headers=admin_headers)
    body = resp.json()
    assert body["status"] == "overdue"
    assert body["assignments"][0]["status"] == "overdue"

    resp = await async_client.post("/api/v1/corrective-actions/mark-overdue", headers=admin_headers)
    assert resp.json()["marked_overdue"] == 0


@pytest.mark.anyio
async def test_list_filters(async_client, admin_headers, raise_action):
    action = await raise_action(priority="high", assigned_to=3)

    resp = await async_client.get(
        "/api/v1/corrective-actions", params={"priority": "high", "assigned_to": 3}, headers=admin_headers
    )
    assert [a["id"] for a in resp.json()] == [action["id"]]

    resp = await async_client.get("/api/v1/corrective-actions", params={"priority": "low"}, headers=admin_headers)
    assert resp.json() == []


@pytest.mark.anyio
async def test_action_needs_an_audit_assignment(async_client, auditor_headers, session_factory, create_plan, audit_asset_ids):
    plan_id = (await create_plan())["plan"]["id"]
    ids = await audit_asset_ids(plan_id)
    async with session_factory() as session:
        await session.execute(delete(AuditAssignment).where(AuditAssignment.audit_plan_id == plan_id))
        await session.commit()

    resp = await async_client.post(
        "/api/v1/corrective-actions",
        json={"audit_asset_id": ids["PC-001"], "issue": "x", "action": "y"},
        headers=auditor_headers,
    )
    assert resp.status_code == 404
    assert "No audit assignment found" in resp.json()["detail"]


@pytest.mark.anyio
async def test_reassignment_notifies_new_assignee(async_client, auditor_headers, raise_action, mailer):
    action = await raise_action(assigned_to=2)
    mailer.sent.clear()
    url = f"/api/v1/corrective-actions/{action['id']}"

    resp = await async_client.put(url, json={"assigned_to": 3}, headers=auditor_headers)
    assert resp.status_code == 200, resp.text
    [(template, data)] = mailer.to("carol@example.com")
    assert template == "corrective_action"
    assert data["action"]["id"] == action["id"]
    assert mailer.to("bob@example.com") == []

    # Same assignee, other edits: nobody is mailed
    mailer.sent.clear()
    resp = await async_client.put(url, json={"assigned_to": 3, "priority": "low"}, headers=auditor_headers)
    assert resp.status_code == 200, resp.text
    assert mailer.sent == []


@pytest.mark.anyio
async def test_completed_action_cannot_be_completed_again(async_client, auditor_headers, raise_action):
    action = await raise_action()
    url = f"/api/v1/corrective-actions/{action['id']}"
    resp = await async_client.post(f"{url}/complete", json={}, headers=auditor_headers)
    assert resp.status_code == 200, resp.text

    resp = await async_client.post(
        "/api/v1/corrective-actions/bulk-status",
        json={"ids": [action["id"]], "status": "completed"},
        headers=auditor_headers,
    )
    [result] = resp.json()["results"]
    assert result["success"] is False
    assert "already completed" in result["message"]
