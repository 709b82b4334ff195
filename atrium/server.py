"""Atrium — service registry HTTP host.

Exposes:
  GET    /health                  — liveness check
  GET    /service-info            — self-description (Atrium is discoverable too)
  GET    /                        — welcome + active services
  GET    /services                — active services visible to the caller
  GET    /services/all            — every service (admin)
  GET    /services/{id}           — one service
  GET    /categories              — display categories
  POST   /admin/services          — register an external service (admin)
  DELETE /admin/services/{id}     — unregister an external service (admin)
  POST   /auth/login              — open a session
  POST   /auth/logout             — close the session

Start with::

    python -m atrium.server
    # or
    uvicorn atrium.server:app --host 0.0.0.0 --port 3000
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel

from atrium import __version__
from atrium.auth import (
    ADMIN_ROLE,
    AuthError,
    Identity,
    IdentityVerifier,
    InMemorySessionStore,
    SessionStore,
    bearer_scheme,
    close_session,
    open_session,
    optional_identity,
    require_admin,
)
from atrium.config import AppConfig
from atrium.discovery.errors import (
    DuplicateIdError,
    NotFoundError,
    PersistenceError,
)
from atrium.discovery.models import ServiceSpec
from atrium.discovery.registry import ServiceRegistry
from atrium.discovery.runtime import DiscoveryRuntime

logger = logging.getLogger(__name__)

SERVICE_INFO: dict[str, Any] = {
    "id": "atrium",
    "name": "Atrium",
    "description": "Homepage with service discovery",
    "version": __version__,
    "icon": "🏠",
    "category": "dashboard",
    "requiredRoles": ["user"],
    "healthCheck": "/health",
    "features": ["service discovery", "dashboard"],
}


class LoginRequest(BaseModel):
    username: str
    password: str


def _registry(request: Request) -> ServiceRegistry:
    return request.app.state.runtime.registry


def create_app(
    config: AppConfig | None = None,
    runtime: DiscoveryRuntime | None = None,
    identity_verifier: IdentityVerifier | None = None,
    sessions: SessionStore | None = None,
) -> FastAPI:
    """Build the FastAPI app.  The registry is loaded and background tasks
    started in the app's lifespan, not at import time."""
    config = config or AppConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.runtime = runtime or DiscoveryRuntime(config)
        app.state.started = time.monotonic()
        await app.state.runtime.start()
        try:
            yield
        finally:
            await app.state.runtime.stop()

    app = FastAPI(title="Atrium", version=__version__, lifespan=lifespan)
    app.state.config = config
    app.state.identity_verifier = identity_verifier
    app.state.sessions = sessions or InMemorySessionStore()

    # ── Error mapping ─────────────────────────────────────────────

    @app.exception_handler(NotFoundError)
    async def _not_found(_: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(DuplicateIdError)
    async def _duplicate(_: Request, exc: DuplicateIdError):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(PersistenceError)
    async def _persistence(_: Request, exc: PersistenceError):
        logger.error("Persistence failure: %s", exc)
        return JSONResponse(status_code=500, content={"detail": "Could not save service registry"})

    # ── Endpoints ─────────────────────────────────────────────────

    @app.get("/health")
    async def health(request: Request):
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.monotonic() - request.app.state.started, 3),
        }

    @app.get("/service-info")
    async def service_info():
        return SERVICE_INFO

    @app.get("/")
    async def index(request: Request):
        return {
            "message": "Welcome to Atrium",
            "version": __version__,
            "services": [s.to_dict() for s in _registry(request).list_active()],
        }

    @app.get("/services")
    def list_services(request: Request, identity: Identity | None = Depends(optional_identity)):
        roles = identity.roles if identity is not None else frozenset()
        return [s.to_dict() for s in _registry(request).list_for_roles(roles)]

    @app.get("/services/all")
    def list_all_services(request: Request, _: Identity = Depends(require_admin)):
        return [s.to_dict() for s in _registry(request).list_all()]

    @app.get("/services/{service_id}")
    def get_service(
        service_id: str,
        request: Request,
        identity: Identity | None = Depends(optional_identity),
    ):
        record = _registry(request).get_service(service_id)
        roles = identity.roles if identity is not None else frozenset()
        if ADMIN_ROLE not in roles and not record.visible_to(roles):
            raise NotFoundError(service_id)
        return record.to_dict()

    @app.get("/categories")
    def list_categories(request: Request):
        return [c.to_dict() for c in _registry(request).list_categories()]

    @app.post("/admin/services", status_code=201)
    def register_service(spec: ServiceSpec, request: Request, _: Identity = Depends(require_admin)):
        try:
            record = _registry(request).register_external(spec)
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc))
        return record.to_dict()

    @app.delete("/admin/services/{service_id}")
    def unregister_service(service_id: str, request: Request, _: Identity = Depends(require_admin)):
        if not _registry(request).unregister(service_id):
            raise NotFoundError(service_id)
        return {"ok": True, "id": service_id}

    @app.post("/auth/login")
    def login(req: LoginRequest, request: Request):
        verifier: IdentityVerifier | None = request.app.state.identity_verifier
        if verifier is None:
            raise HTTPException(status_code=503, detail="No identity verifier configured")
        try:
            identity = verifier.verify(req.username, req.password)
        except AuthError:
            raise HTTPException(status_code=401, detail="Invalid credentials")
        token = open_session(request.app.state.sessions, identity, config.session_ttl_s)
        return {"token": token, "user": identity.to_dict()}

    @app.post("/auth/logout")
    def logout(request: Request, creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme)):
        if creds is not None:
            close_session(request.app.state.sessions, creds.credentials)
        return {"ok": True}

    return app


app = create_app()


# ──────────────────────────────────────────────────────────────────
# Entry point
# ──────────────────────────────────────────────────────────────────

def main():
    import uvicorn

    config = AppConfig.from_env()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting Atrium on %s:%d", config.host, config.port)
    uvicorn.run("atrium.server:app", host=config.host, port=config.port, reload=False)


if __name__ == "__main__":
    main()
