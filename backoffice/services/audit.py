"""
Best-effort audit trail.

Entries are written in their own session after the business transaction
has committed. A failure here is logged and swallowed: it never fails the
request that triggered it.
"""

import json
import logging
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.models.audit import AuditLog
from backoffice.models.user import User

logger = logging.getLogger(__name__)


def _jsonable(values: Optional[dict]) -> Optional[dict]:
    if values is None:
        return None
    return json.loads(json.dumps(values, default=str))


async def record_audit(
    db: AsyncSession,
    actor: Optional[User],
    entity_type: str,
    entity_id: Any,
    action: str,
    old_values: Optional[dict] = None,
    new_values: Optional[dict] = None,
    context: Optional[str] = None,
) -> None:
    entry = AuditLog(
        user_id=actor.id if actor else None,
        user_role=actor.role if actor else None,
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        old_values_json=_jsonable(old_values),
        new_values_json=_jsonable(new_values),
        context=context[:255] if context else None,
    )
    try:
        async with AsyncSession(db.bind, expire_on_commit=False) as audit_db:
            audit_db.add(entry)
            await audit_db.commit()
    except Exception as e:
        logger.warning(
            f"Audit write failed for {entity_type}:{entity_id} ({action}): {e}",
            extra={"actor_id": str(actor.id) if actor else None, "resource_id": str(entity_id)},
        )
