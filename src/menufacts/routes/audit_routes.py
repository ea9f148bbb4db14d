"""
Audit log routes.
GET /audit-logs  audit trail, newest first
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from menufacts.database import get_db
from menufacts.services.audit_service import get_audit_logs

router = APIRouter(tags=["Audit"])


@router.get("/audit-logs")
def list_audit_logs(
    entity_type: str | None = Query(None),
    entity_id: str | None = Query(None),
    limit: int = Query(100, le=500),
    db: Session = Depends(get_db),
):
    logs = get_audit_logs(db, entity_type=entity_type, entity_id=entity_id, limit=limit)
    return [
        {
            "id": l.id,
            "actor": l.actor,
            "entity_type": l.entity_type,
            "entity_id": l.entity_id,
            "action": l.action.value,
            "before_data": l.before_data,
            "after_data": l.after_data,
            "created_at": str(l.created_at),
        }
        for l in logs
    ]
