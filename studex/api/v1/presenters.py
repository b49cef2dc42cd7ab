# studex/api/v1/presenters.py
from __future__ import annotations

from studex.core.pagination import Page
from studex.models.contract_event import ContractEvent
from studex.models.dispute import Dispute
from studex.models.escrow_contract import EscrowContract
from studex.models.ledger_movement import LedgerMovement
from studex.models.notification import Notification


def _iso(dt):
    return dt.isoformat() if dt else None


def contract_to_resp(c: EscrowContract) -> dict:
    return {
        "contractId": str(c.id),
        "clientId": c.client_id,
        "freelancerId": c.freelancer_id,
        "jobRef": c.job_ref,
        "jobTitle": c.job_title,
        "amount": c.amount,
        "status": c.status,
        "disputeId": str(c.dispute_id) if c.dispute_id else None,
        "createdAtIso": _iso(c.created_at),
        "statusChangedAtIso": _iso(c.status_changed_at),
    }


def dispute_to_resp(d: Dispute) -> dict:
    return {
        "disputeId": str(d.id),
        "contractId": str(d.contract_id),
        "raisedBy": d.raised_by,
        "raisedByParty": d.raised_by_party,
        "reason": d.reason,
        "status": d.status,
        "resolution": d.resolution,
        "clientSharePercent": d.client_share_percent,
        "resolvedBy": d.resolved_by,
        "createdAtIso": _iso(d.created_at),
        "resolvedAtIso": _iso(d.resolved_at),
    }


def event_to_resp(e: ContractEvent) -> dict:
    return {
        "eventId": str(e.id),
        "eventType": e.event_type,
        "fromStatus": e.from_status,
        "toStatus": e.to_status,
        "actorId": e.actor_id,
        "actorRole": e.actor_role,
        "requestId": e.request_id,
        "createdAtIso": _iso(e.created_at),
        "payload": e.payload_json or {},
    }


def movement_to_resp(m: LedgerMovement) -> dict:
    return {
        "movementId": str(m.id),
        "seq": m.seq,
        "amount": m.amount,
        "balanceAfter": m.balance_after,
        "reason": m.reason,
        "contractId": str(m.contract_id) if m.contract_id else None,
        "entryHash": m.entry_hash,
        "createdAtIso": _iso(m.created_at),
    }


def notification_to_resp(n: Notification) -> dict:
    return {
        "notificationId": str(n.id),
        "type": n.event_type,
        "contractId": str(n.contract_id) if n.contract_id else None,
        "read": n.is_read,
        "createdAtIso": _iso(n.created_at),
        "payload": n.payload_json or {},
    }


def page_to_resp(page: Page, render) -> dict:
    return {
        "items": [render(x) for x in page.items],
        "page": page.page,
        "pageSize": page.page_size,
        "total": page.total,
        "totalPages": page.total_pages,
    }
