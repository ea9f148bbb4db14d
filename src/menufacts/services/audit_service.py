import logging
from sqlalchemy import desc
from sqlalchemy.orm import Session
from menufacts.models.audit_log import AuditLog, AuditAction

logger = logging.getLogger(__name__)


def log_event(
        db: Session,
        actor: str,
        entity_type: str,
        entity_id: str,
        action: AuditAction,
        before: dict | None = None,
        after: dict | None = None,
        commit: bool = True,
) -> AuditLog:
    """
    Central audit logging utility.
    Call this everywhere instead of inline AuditLog() inserts.
    Pass commit=False to make the audit row part of the caller's transaction.

    Usage:
        log_event(db, admin_id, "menu_item", item.id, AuditAction.CREATE,
                  after=extracted.model_dump())
    """
    entry = AuditLog(
        actor=actor,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        before_data=before,
        after_data=after,
    )
    db.add(entry)
    if commit:
        db.commit()
    logger.info("AUDIT [%s] entity=%s/%s actor=%s", action.value, entity_type, entity_id, actor)
    return entry


def get_audit_logs(
        db: Session,
        entity_type: str | None = None,
        entity_id: str | None = None,
        limit: int = 200,
) -> list[AuditLog]:
    q = db.query(AuditLog)
    if entity_type:
        q = q.filter_by(entity_type = entity_type)
    if entity_id:
        q = q.filter_by(entity_id = entity_id)
    return q.order_by(desc(AuditLog.created_at), desc(AuditLog.id)).limit(limit).all()
