"""Acting identity: the authenticated user, else the visitor id kept in session storage."""
import logging
from typing import Mapping, Optional

from fomo.config import settings

logger = logging.getLogger(__name__)


def resolve_acting_user(
    authenticated_user_id: Optional[str],
    session_storage: Optional[Mapping[str, str]] = None,
    key: str = settings.VISITOR_ID_KEY,
) -> Optional[str]:
    if authenticated_user_id:
        return authenticated_user_id
    if session_storage is None:
        return None
    try:
        visitor_id = session_storage.get(key)
    except Exception:
        # Unavailable storage behaves like an anonymous session.
        logger.warning("Session storage unavailable; no acting user")
        return None
    return visitor_id or None
