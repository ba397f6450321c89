"""Audit logging service.

Writes audit log entries for prediction runs, seasonal adjustments and
pricing changes.  When called without an explicit ``db`` session,
``log_action`` opens its own short-lived session.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.orm import Session

from cafe_ops.db.session import SessionLocal
from cafe_ops.models.audit import AuditLogEntry

logger = logging.getLogger("audit")

STOCK_PREDICTION = "STOCK_PREDICTION"
BULK_STOCK_PREDICTION = "BULK_STOCK_PREDICTION"
SEASONAL_ADJUSTMENT_APPLIED = "SEASONAL_ADJUSTMENT_APPLIED"
PRICE_CALCULATION = "PRICE_CALCULATION"
BULK_PRICE_CALCULATION = "BULK_PRICE_CALCULATION"
INGREDIENT_COST_UPDATE = "INGREDIENT_COST_UPDATE"


def log_action(
    action: str,
    entity_type: str = "",
    entity_id: str = "",
    actor_id: Optional[str] = None,
    actor_role: str = "",
    ip_address: str = "",
    details: Optional[dict[str, Any]] = None,
    db: Optional[Session] = None,
) -> None:
    """Write an audit log entry.

    Args:
        action: The action performed (STOCK_PREDICTION, PRICE_CALCULATION, ...)
        entity_type: Type of entity affected (ingredient, menu_item, ...)
        entity_id: ID of the affected entity
        actor_id: Device ID of the caller
        actor_role: Role of the caller
        ip_address: Client IP address
        details: Additional details (counts, parameters, ...)
        db: Optional existing DB session. If None, creates a new one.
    """
    logger.info(
        "%s entity=%s:%s actor=%s", action, entity_type or "-", entity_id or "-", actor_id or "-"
    )

    own_session = db is None
    if own_session:
        db = SessionLocal()

    try:
        entry = AuditLogEntry(
            actor_id=actor_id,
            actor_role=actor_role,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id else "",
            details=details or {},
            ip_address=ip_address or "",
            created_at=datetime.now(timezone.utc),
        )
        if own_session:
            db.add(entry)
            db.commit()
        else:
            # Savepoint so a failed entry rolls back without poisoning the
            # caller's transaction; the caller commits.
            with db.begin_nested():
                db.add(entry)
    except Exception:
        logger.exception("Failed to write audit log entry")
        if own_session:
            db.rollback()
    finally:
        if own_session:
            db.close()
