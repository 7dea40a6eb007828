"""
Studio Ops Hub — API Key Auth Middleware
==========================================
Validates X-API-Key header against the api_keys table in Supabase.
Scoped permissions: read, write, admin.

Each request also carries an ``Actor`` (request.state.actor) built from the
key's user and that user's role in the users table, capped by the key's scope
(read -> employee, write -> manager, admin -> admin). Service operations make
their admin / ownership decisions from the actor.

Public endpoints (health, docs) and cron endpoints (own shared secret)
bypass key auth.
"""
from __future__ import annotations

import hashlib
import time
from datetime import datetime, timezone
from typing import Optional

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from scripts.lib.actor import ADMIN, EMPLOYEE, MANAGER, Actor
from scripts.lib.logger import setup_logger

logger = setup_logger("api_middleware")

PUBLIC_PATHS = {
    "/api/health",
    "/api/sync/cron",
    "/docs",
    "/openapi.json",
    "/redoc",
}

PUBLIC_PREFIXES = ("/api/cron/",)

SCOPE_LEVELS = {"read": 0, "write": 1, "admin": 2}

# Highest role each scope can act as
ROLE_BY_LEVEL = [EMPLOYEE, MANAGER, ADMIN]

DEV_ACTOR = Actor(user_id=None, role=ADMIN)


def _hash_key(key: str) -> str:
    """SHA-256 hash of an API key for storage comparison."""
    return hashlib.sha256(key.encode()).hexdigest()


def actor_for(key_info: dict) -> Actor:
    """
    Actor for a validated key: the lower of the key's scope and the linked
    user's role. An admin-scoped key held by an employee acts as an employee;
    an admin user's read key acts as an employee too. Keys without a user act
    at their scope's level.
    """
    scope_level = SCOPE_LEVELS.get(key_info.get("scope"), 0)
    if not key_info.get("user_id"):
        return Actor(user_id=None, role=ROLE_BY_LEVEL[scope_level])

    role = key_info.get("role") or EMPLOYEE
    role_level = ROLE_BY_LEVEL.index(role) if role in ROLE_BY_LEVEL else 0
    return Actor(user_id=key_info["user_id"], role=ROLE_BY_LEVEL[min(scope_level, role_level)])


class APIKeyMiddleware(BaseHTTPMiddleware):
    """
    Middleware that validates API keys from the X-API-Key header.

    Without REQUIRE_API_KEY, requests with no key pass through as an admin
    (development mode).
    """

    def __init__(self, app, require_auth: bool = False):
        super().__init__(app)
        self.require_auth = require_auth
        self._cache: dict[str, dict] = {}
        self._cache_ttl = 300

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path

        if path in PUBLIC_PATHS or any(path.startswith(p) for p in PUBLIC_PREFIXES):
            return await call_next(request)

        if request.headers.get("upgrade", "").lower() == "websocket":
            return await call_next(request)

        api_key = request.headers.get("X-API-Key")

        if not api_key:
            if self.require_auth:
                return JSONResponse(status_code=401, content={"detail": "Missing X-API-Key header"})
            request.state.api_scope = "admin"
            request.state.actor = DEV_ACTOR
            return await call_next(request)

        key_info = self._validate_key(api_key)
        if not key_info:
            return JSONResponse(status_code=403, content={"detail": "Invalid API key"})

        request.state.api_scope = key_info.get("scope", "read")
        request.state.actor = actor_for(key_info)
        return await call_next(request)

    def _validate_key(self, key: str) -> Optional[dict]:
        """Check key against Supabase api_keys table (with caching)."""
        key_hash = _hash_key(key)

        cached = self._cache.get(key_hash)
        if cached and cached.get("_cached_at", 0) + self._cache_ttl > time.time():
            return cached

        try:
            from scripts.lib.supabase_client import get_client

            client = get_client()
            result = (
                client.table("api_keys")
                .select("id, scope, user_id, active")
                .eq("key_hash", key_hash)
                .eq("active", True)
                .limit(1)
                .execute()
            )
            if not result.data:
                return None

            info = result.data[0]
            if info.get("user_id"):
                user = (
                    client.table("users")
                    .select("role, deleted_at")
                    .eq("id", info["user_id"])
                    .limit(1)
                    .execute()
                )
                if not user.data or user.data[0].get("deleted_at"):
                    return None
                info["role"] = user.data[0].get("role")

            info["_cached_at"] = time.time()
            self._cache[key_hash] = info

            try:
                client.table("api_keys").update({
                    "last_used_at": datetime.now(timezone.utc).isoformat()
                }).eq("id", info["id"]).execute()
            except Exception as e:
                logger.debug("last_used_at update failed: %s", e)

            return info

        except Exception as e:
            logger.warning("API key validation failed (read-only access): %s", e)
            return {"scope": "read", "_cached_at": time.time()}


def get_actor(request: Request) -> Actor:
    """
    Dependency returning the caller's Actor.

    Usage:
        @router.post("/entries")
        async def create(body: ..., actor: Actor = Depends(get_actor)): ...
    """
    return getattr(request.state, "actor", None) or Actor(user_id=None)


def require_scope(required: str):
    """
    Dependency to enforce minimum API scope on an endpoint.

    Usage:
        @router.get("/admin-only", dependencies=[Depends(require_scope("admin"))])
    """

    async def _check(request: Request):
        current = getattr(request.state, "api_scope", "read")
        if SCOPE_LEVELS.get(current, 0) < SCOPE_LEVELS.get(required, 0):
            raise HTTPException(
                status_code=403,
                detail=f"Requires '{required}' scope, current: '{current}'",
            )

    return _check
