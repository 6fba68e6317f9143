import json
import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from models.audit_log import AuditLog

logger = logging.getLogger(__name__)


def _dump(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


def record_audit(
    db: Session,
    actor,
    action: str,
    entity: str,
    entity_id: Any = None,
    old_value: Any = None,
    new_value: Any = None,
) -> AuditLog:
    """Append one audit row for a money or order change made by `actor`."""
    entry = AuditLog(
        actor_id=getattr(actor, "user_id", None),
        actor_email=getattr(actor, "email", None),
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        old_value=_dump(old_value),
        new_value=_dump(new_value),
    )
    db.add(entry)
    db.commit()
    logger.debug(f"Audit: {action} on {entity} {entity_id} by {entry.actor_email or entry.actor_id}")
    return entry
