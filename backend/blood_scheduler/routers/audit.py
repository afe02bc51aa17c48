from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from blood_scheduler.db.session import get_db
from blood_scheduler.deps import require_actor
from blood_scheduler.schemas.audit_log import AuditLogOut
from blood_scheduler.services.audit import list_events

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("/{entity_type}/{entity_id}", response_model=list[AuditLogOut])
def list_entity_audit(
    entity_type: str,
    entity_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    _actor: int = Depends(require_actor),
):
    return list_events(db, entity_type, entity_id, limit=limit)
