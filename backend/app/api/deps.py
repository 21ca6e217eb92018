from typing import Optional
from fastapi import Depends, Header, HTTPException

from app.core.config import settings
from app.core.errors import RateLimited
from app.core.rate_limit import RateLimiter, rate_limiter
from app.services.ai_service import AIService, ai_service


async def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    # The identity provider in front of the API authenticates the caller and forwards its id
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(401, "Authentication required")
    return x_user_id.strip()


def get_ai_client() -> AIService:
    return ai_service


def get_rate_limiter() -> RateLimiter:
    return rate_limiter


async def limit_ai_generation(
    user_id: str = Depends(get_current_user_id),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    result = limiter.check_and_consume(
        f"{user_id}:ai-generation", settings.AI_RATE_LIMIT, settings.AI_RATE_WINDOW_SECONDS
    )
    if not result.allowed:
        raise RateLimited(retry_after=result.retry_after)
    return result
