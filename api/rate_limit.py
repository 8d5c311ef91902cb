"""
Rate limit dependency

    @router.post("/bet", dependencies=[Depends(rate_limit("bet"))])

超過上限 → 429 "Rate limited. Try again in Ns"
"""
from fastapi import HTTPException, Request
import logging

from database import get_settings
from services.rate_limit_service import get_limiter

logger = logging.getLogger(__name__)


def get_client_ip(request: Request) -> str:
    """x-forwarded-for 第一個 → x-real-ip → socket peer"""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip

    return request.client.host if request.client else "unknown"


def rate_limit(name: str):
    """
    產生 FastAPI dependency

    參數：
        name: "bet" 或 "status"，對應 Settings 的 <name>_rate_limit_requests / <name>_rate_limit_window_s
    """
    def dependency(request: Request):
        settings = get_settings()
        if not settings.rate_limit_enabled:
            return

        limiter = get_limiter(
            name,
            getattr(settings, f"{name}_rate_limit_requests"),
            getattr(settings, f"{name}_rate_limit_window_s"),
        )
        ip = get_client_ip(request)
        result = limiter.check(ip)

        if not result.allowed:
            logger.warning(f"Rate limited {name} for {ip} ({result.reset_in}s left)")
            raise HTTPException(
                status_code=429,
                detail=f"Rate limited. Try again in {result.reset_in}s",
            )

    return dependency
