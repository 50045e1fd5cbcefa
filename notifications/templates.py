# notifications/templates.py
"""
Plain-text mail templates.

Each template takes a dict of already-loaded values (never ORM objects) and
returns (subject, body).
"""
from typing import Any, Callable


class UnknownTemplateError(KeyError):
    pass


def _asset_lines(assets: list[dict]) -> list[str]:
    lines = []
    for a in assets:
        parts = [a.get("asset_id") or "-", a.get("type") or "", a.get("model") or ""]
        label = " ".join(p for p in parts if p)
        lines.append(f"  - {label} @ {a.get('location') or '-'} ({a.get('status') or '-'})")
    return lines


def _action_lines(actions: list[dict]) -> list[str]:
    lines = []
    for i, ca in enumerate(actions, start=1):
        lines.append(f"{i}. [{ca['priority'].upper()}] {ca['issue']}")
        lines.append(f"   Action: {ca['action']}")
        if ca.get("asset_id"):
            lines.append(f"   Asset: {ca['asset_id']} ({ca.get('location') or '-'})")
        lines.append(f"   Due: {ca.get('due_date') or 'not set'}  Status: {ca['status']}")
    return lines


def audit_plan_kickoff(data: dict[str, Any]) -> tuple[str, str]:
    subject = f"Asset audit started: {data['plan_name']}"
    lines = [
        f"Hello {data['employee_name']},",
        "",
        f"The asset audit \"{data['plan_name']}\" runs from {data['start_date']} to {data['due_date']}.",
    ]
    if data.get("description"):
        lines += ["", data["description"]]
    if data.get("is_auditor"):
        lines += ["", "You are an auditor for one or more locations in this audit."]
    assets = data.get("assets") or []
    if assets:
        lines += ["", "Please confirm the status of these assets assigned to you:"]
        lines += _asset_lines(assets)
    lines += ["", f"Request portal access here: {data['portal_url']}"]
    return subject, "\n".join(lines)


def audit_reminder(data: dict[str, Any]) -> tuple[str, str]:
    days = data["days_remaining"]
    subject = f"Reminder: {data['plan_name']} is due in {days} day{'s' if days != 1 else ''}"
    lines = [
        f"Hello {data['employee_name']},",
        "",
        f"The asset audit \"{data['plan_name']}\" is due on {data['due_date']}.",
        f"{len(data['pending_assets'])} asset(s) are still waiting for your confirmation:",
        *_asset_lines(data["pending_assets"]),
        "",
        f"Request portal access here: {data['portal_url']}",
    ]
    return subject, "\n".join(lines)


def audit_access(data: dict[str, Any]) -> tuple[str, str]:
    subject = f"Your access link for {data['plan_name']}"
    body = "\n".join([
        f"Hello {data['employee_name']},",
        "",
        "Use this link to review and update your assets:",
        data["access_url"],
        "",
        f"The link expires at {data['expires_at']}.",
    ])
    return subject, body


def corrective_action(data: dict[str, Any]) -> tuple[str, str]:
    ca = data["action"]
    subject = f"Corrective action assigned: {ca['issue']}"
    lines = [
        f"Hello {data['employee_name']},",
        "",
        f"A corrective action from the audit \"{data.get('plan_name') or '-'}\" needs your attention:",
        "",
        *_action_lines([ca]),
    ]
    return subject, "\n".join(lines)


def consolidated_corrective_action(data: dict[str, Any]) -> tuple[str, str]:
    actions = data["actions"]
    subject = f"{len(actions)} corrective action(s) need your attention"
    if data.get("reason"):
        subject = f"{subject} ({data['reason']})"
    lines = [
        f"Hello {data['employee_name']},",
        "",
        "The following corrective actions are assigned to you:",
        "",
        *_action_lines(actions),
    ]
    return subject, "\n".join(lines)


TEMPLATES: dict[str, Callable[[dict[str, Any]], tuple[str, str]]] = {
    "audit_plan_kickoff": audit_plan_kickoff,
    "audit_reminder": audit_reminder,
    "audit_access": audit_access,
    "corrective_action": corrective_action,
    "consolidated_corrective_action": consolidated_corrective_action,
}


def render(template: str, data: dict[str, Any]) -> tuple[str, str]:
    try:
        fn = TEMPLATES[template]
    except KeyError as exc:
        raise UnknownTemplateError(template) from exc
    return fn(data)
