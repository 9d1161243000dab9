"""
Limitation de débit des routes sensibles (création de commande, vérification, presign).

- Redis (fastapi-limiter) quand le limiter est initialisé au démarrage.
- Fenêtre glissante en mémoire si LOCAL_RATE_LIMIT_FALLBACK=1 (dev, tests).
- Sinon la dépendance laisse passer.
"""
import os
import time
from typing import Any, Callable, Dict, List
from urllib.parse import urlparse

from fastapi import HTTPException, Request, Response
from fastapi_limiter import FastAPILimiter
from fastapi_limiter.depends import RateLimiter

_clock = time.monotonic


def _client_key(req: Request) -> str:
    """Une fenêtre par adresse cliente et par chemin."""
    ip = req.client.host if req.client else "local"
    return f"ip:{ip}:{req.url.path}"


def _local_fallback_enabled() -> bool:
    return os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1"


def _hit_local_window(request: Request, times: int, seconds: int) -> None:
    windows: Dict[str, List[float]] = getattr(request.app.state, "rate_limit_windows", None) or {}
    key = _client_key(request)
    now = _clock()
    recent = [t for t in windows.get(key, []) if now - t < seconds]
    if len(recent) >= times:
        raise HTTPException(status_code=429, detail="Too many requests, please retry later")
    recent.append(now)
    windows[key] = recent
    request.app.state.rate_limit_windows = windows


def optional_rate_limit(times: int, seconds: int) -> Callable:
    async def _dep(request: Request, response: Response):
        if _local_fallback_enabled():
            _hit_local_window(request, times, seconds)
            return
        if getattr(request.app.state, "rate_limit_enabled", None) is not True:
            return
        if getattr(FastAPILimiter, "redis", None) is None:
            return

        async def _identifier(req: Request) -> str:
            return _client_key(req)

        await RateLimiter(times=times, seconds=seconds, identifier=_identifier)(request, response)
    return _dep


def rate_limit_health_info(request: Request) -> Dict[str, Any]:
    enabled = getattr(request.app.state, "rate_limit_enabled", None)
    ready = getattr(FastAPILimiter, "redis", None) is not None
    info: Dict[str, Any] = {
        "enabled": None if enabled is None else bool(enabled),
        "ready": ready,
        "backend": "redis" if ready else None,
        "localFallback": _local_fallback_enabled(),
    }
    redis_url = os.getenv("RATE_LIMIT_REDIS_URL")
    if ready and redis_url:
        parsed = urlparse(redis_url)
        # Jamais le mot de passe éventuel de l'URL
        info["redis"] = {"scheme": parsed.scheme, "host": parsed.hostname, "port": parsed.port}
    return info
