from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from admissions_scheduler.base.config import settings
from admissions_scheduler.base.models import Principal
from admissions_scheduler.services.engine import SchedulingEngine

# --- API key header config ---
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def verify_api_key(key: str = Security(api_key_header)):
    if settings.ENABLE_API_KEY_SECURITY and key != settings.API_KEY:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid or missing API key")


@lru_cache()
def get_engine() -> SchedulingEngine:
    return SchedulingEngine.from_settings(settings)


def get_principal(
    user_id: Optional[int] = Header(None, alias="X-User-Id"),
    role: Optional[str] = Header(None, alias="X-User-Role"),
) -> Optional[Principal]:
    """Caller identity as forwarded by the gateway; None for anonymous reads."""
    if user_id is None:
        return None
    return Principal(user_id=user_id, role=role)


def require_principal(principal: Optional[Principal] = Depends(get_principal)) -> Principal:
    if principal is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    return principal
