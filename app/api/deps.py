"""
API Dependencies — identity resolution and store factories.

Every endpoint resolves the caller before touching any data:

  user_id = Depends(get_current_user)     → 401 on missing/unknown token

Stores are request-scoped and wrap the request's DB session. Tests swap
them for in-memory implementations via app.dependency_overrides.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.config import settings
from app.core.database import get_db
from app.core.analytics.stores import (
    SqlFeedbackRepository,
    SqlInsightRepository,
    SqlPatternRepository,
    SqlPipelineRepository,
    SqlRecordProvider,
)

logger = logging.getLogger(__name__)

bearer = HTTPBearer(auto_error=False)


# ═══════════════════════════════════════════════════════════════
# IDENTITY
# ═══════════════════════════════════════════════════════════════

class StaticTokenIdentityProvider:
    """Maps opaque bearer tokens to user ids from a fixed table."""

    def __init__(self, tokens: Dict[str, str]):
        self._tokens = dict(tokens)

    @classmethod
    def from_setting(cls, raw: str) -> "StaticTokenIdentityProvider":
        """Parse "token=user_id,token2=user_id2"."""
        tokens = {}
        for pair in (raw or "").split(","):
            token, sep, user_id = pair.strip().partition("=")
            if sep and token.strip() and user_id.strip():
                tokens[token.strip()] = user_id.strip()
        return cls(tokens)

    def resolve(self, token: Optional[str]) -> Optional[str]:
        if not token:
            return None
        return self._tokens.get(token)


def get_identity_provider() -> StaticTokenIdentityProvider:
    return StaticTokenIdentityProvider.from_setting(settings.AUTH_TOKENS)


async def get_current_user(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
        provider: StaticTokenIdentityProvider = Depends(get_identity_provider),
) -> str:
    user_id = provider.resolve(credentials.credentials if credentials else None)
    if not user_id:
        logger.warning("Rejected request with missing or unknown bearer token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id


# ═══════════════════════════════════════════════════════════════
# STORES (request-scoped)
# ═══════════════════════════════════════════════════════════════

def get_record_provider(db=Depends(get_db)):
    return SqlRecordProvider(db)


def get_pattern_repository(db=Depends(get_db)):
    return SqlPatternRepository(db)


def get_feedback_repository(db=Depends(get_db)):
    return SqlFeedbackRepository(db)


def get_insight_repository(db=Depends(get_db)):
    return SqlInsightRepository(db)


def get_pipeline_repository(db=Depends(get_db)):
    return SqlPipelineRepository(db)


# ═══════════════════════════════════════════════════════════════
# ERROR RESPONSES
# ═══════════════════════════════════════════════════════════════

def error_response(status_code: int, message: str, **extra: Any) -> JSONResponse:
    """{"error": message, ...extra} with the given status."""
    return JSONResponse(status_code=status_code, content={"error": message, **extra})
