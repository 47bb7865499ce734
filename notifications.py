import logging
from typing import Optional

from database import create_document, db, get_documents, to_object_id, utcnow
from errors import NotFound
from schemas import Notification

logger = logging.getLogger(__name__)

LIST_LIMIT = 50


def notify(message: str, type: str = "info", related_id: Optional[str] = None,
           related_model: Optional[str] = None) -> Optional[str]:
    """Record an admin notification. Failures are logged and never raised."""
    try:
        note = Notification(message=message, type=type, related_id=related_id, related_model=related_model)
        return create_document("notification", note)
    except Exception as exc:
        logger.warning("Unable to record notification %r: %s", message, exc)
        return None


def list_notifications(limit: int = LIST_LIMIT) -> list:
    return get_documents("notification", limit=limit, sort=[("created_at", -1)])


def mark_read(notification_id: str) -> dict:
    oid = to_object_id(notification_id)
    result = db["notification"].update_one({"_id": oid}, {"$set": {"is_read": True, "updated_at": utcnow()}})
    if result.matched_count == 0:
        raise NotFound("Notification not found")
    return db["notification"].find_one({"_id": oid})
