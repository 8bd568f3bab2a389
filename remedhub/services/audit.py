"""
Audit logging service.
Append-only activity log with integrity hashing, written in the caller's transaction.
"""
import hashlib
import json
from datetime import datetime, timezone
from typing import Optional, Dict, Any
from sqlalchemy.orm import Session

from ..models.models import AuditLog
from ..config import settings


def record_activity(
    db: Session,
    entity_type: str,
    entity_id: Any,
    action: str,
    actor_id: Optional[Any] = None,
    organization_id: Optional[Any] = None,
    source: Optional[str] = None,
    changes_json: Optional[Dict] = None,
    context: Optional[Dict] = None,
    integrity_secret: Optional[str] = None,
) -> AuditLog:
    """
    Add an append-only audit entry to the session.

    Args:
        db: Database session (the caller commits)
        entity_type: job_completion|time_entry|material_usage|completion_photo|checklist
        entity_id: Entity ID
        action: CREATE|UPDATE|DELETE|SUBMIT|APPROVE|REJECT|INITIALIZE
        actor_id: User ID who performed the action
        organization_id: Tenant the entity belongs to
        source: app|api|system
        changes_json: Before/after diff
        context: Additional context (job_id, from_status, to_status, ...)
        integrity_secret: Secret for integrity hash (defaults to JWT_SECRET)

    Returns:
        The pending AuditLog object
    """
    timestamp_utc = datetime.now(timezone.utc)

    integrity_hash = None
    if integrity_secret is None:
        integrity_secret = settings.jwt_secret

    if integrity_secret:
        canonical_data = {
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "action": action,
            "actor_id": str(actor_id) if actor_id else None,
            "source": source,
            "timestamp_utc": timestamp_utc.isoformat(),
            "changes": changes_json,
            "context": context,
        }
        # Remove None values and sort keys for consistency
        canonical_data = {k: v for k, v in canonical_data.items() if v is not None}
        canonical_json = json.dumps(canonical_data, sort_keys=True, default=str)
        integrity_hash = hashlib.sha256(f"{canonical_json}:{integrity_secret}".encode()).hexdigest()

    audit_log = AuditLog(
        organization_id=organization_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        actor_id=actor_id,
        source=source or "api",
        changes_json=_jsonable(changes_json),
        timestamp_utc=timestamp_utc,
        context=_jsonable(context),
        integrity_hash=integrity_hash,
    )
    db.add(audit_log)
    return audit_log


def compute_diff(before: Dict, after: Dict) -> Dict:
    """
    Compute a diff between two dictionaries.

    Returns:
        Dict with before/after values for changed fields
    """
    diff = {}
    for key in set(before.keys()) | set(after.keys()):
        before_val = before.get(key)
        after_val = after.get(key)
        if before_val != after_val:
            diff[key] = {"before": before_val, "after": after_val}
    return diff


def _jsonable(value: Optional[Dict]) -> Optional[Dict]:
    if value is None:
        return None
    return json.loads(json.dumps(value, default=str))
