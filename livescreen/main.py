#!/usr/bin/env python3
"""
Livescreen - Main Entry Point

This is the thin orchestration layer that:
1. Loads configuration
2. Builds the preview engine
3. Runs the API server

All business logic is in the modules, following black box principles.
"""

import asyncio
import json
import logging
import logging.config as log_config
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import redis.asyncio as redis
import uvicorn
from fastapi import FastAPI, Header, HTTPException, Response
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse

from livescreen import __version__
from livescreen.engine import PreviewEngine
from livescreen.exceptions import InfrastructureError, LivescreenError
from livescreen.logging_config import get_logging_config

# Import modules through their black box interfaces
from livescreen.modules.api import (
    ApplyChangesResponse,
    CacheEvictionResponse,
    ChangedModulesResponse,
    CleanupResponse,
    CreateSessionRequest,
    FileUpdateRequest,
    HotReloadRequest,
    InjectionResponse,
    InjectModuleRequest,
    NavigationUpdateRequest,
    SessionResponse,
    SwapResultResponse,
)
from livescreen.modules.config import get_config

# Get configuration
config = get_config()

# Configure logging with health check suppression
log_config.dictConfig(get_logging_config(config.get("log_level")))
logger = logging.getLogger("livescreen.api")

# Engine instance (initialized at startup)
engine: Optional[PreviewEngine] = None

NO_STORE = "no-cache, no-store, must-revalidate"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle - initialize and cleanup resources.
    """
    global engine

    # Startup
    logger.info("Starting Livescreen preview server...")
    if engine is None:
        engine = await PreviewEngine.create(config)
    logger.info(
        f"Livescreen started (cache={config.get('cache_backend')}, "
        f"debounce={config.get('debounce_ms')}ms)"
    )

    yield

    # Shutdown
    logger.info("Shutting down Livescreen...")
    if engine is not None:
        await engine.shutdown()
    logger.info("Livescreen shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Livescreen API",
    description="Livescreen - live preview and hot-swap for screen-based apps",
    version=__version__,
    lifespan=lifespan,
)


def require_engine() -> PreviewEngine:
    if engine is None:
        raise HTTPException(503, "Service not initialized")
    return engine


def fingerprint_headers(fingerprint: str, build_time: Optional[str] = None, hit: Optional[bool] = None):
    headers = {"Cache-Control": NO_STORE, "ETag": fingerprint}
    if build_time:
        headers["X-Build-Time"] = build_time
    if hit is not None:
        headers["X-Cache"] = "HIT" if hit else "MISS"
    return headers


def session_endpoints(session_id: str) -> dict:
    base = f"/sessions/{session_id}"
    return {
        "manifest": f"{base}/manifest",
        "module": f"{base}/modules/{{module_id}}",
        "events": f"{base}/events",
        "bundle": f"{base}/bundle.js",
        "changed_modules": f"{base}/changed-modules",
    }


# Session Endpoints


@app.post("/sessions", response_model=SessionResponse, status_code=201)
async def create_session(request: CreateSessionRequest):
    """
    Create a preview session and warm its caches.

    Returns:
        201: Session created (status may be degraded if the initial build was slow)
        503: Workspace could not be prepared
    """
    current = require_engine()
    session = await current.init_session(
        source_path=request.source_path,
        workspace_root=request.workspace_root,
        watch=request.watch,
    )
    return SessionResponse(**session.to_dict())


@app.get("/sessions")
async def list_sessions():
    current = require_engine()
    return {"sessions": [s.to_dict() for s in current.store.list_sessions()]}


@app.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str):
    current = require_engine()
    return SessionResponse(**current.store.require(session_id).to_dict())


@app.delete("/sessions/{session_id}", status_code=204)
async def delete_session(session_id: str):
    """
    Destroy a session: stop watching, drop caches, delete the workspace copy.

    Returns:
        204: Session destroyed
        404: Session not found
    """
    current = require_engine()
    await current.destroy_session(session_id)
    return Response(status_code=204)


@app.post("/sessions/cleanup", response_model=CleanupResponse)
async def cleanup_sessions():
    current = require_engine()
    return CleanupResponse(removed=await current.destroy_all())


# Preview Endpoints


@app.get("/sessions/{session_id}/manifest")
async def get_manifest(session_id: str, if_none_match: Optional[str] = Header(None)):
    """
    App manifest for a full preview load.

    Returns:
        200: Manifest with ETag and X-Build-Time headers
        304: Client copy is current
    """
    current = require_engine()
    session = current.store.require(session_id)
    manifest, hit = await current.preview.get_manifest(session)
    headers = fingerprint_headers(manifest["fingerprint"], manifest["build_time"], hit)
    if if_none_match and if_none_match == manifest["fingerprint"]:
        return Response(status_code=304, headers=headers)

    body = dict(manifest)
    body["status"] = session.status.value
    body["endpoints"] = session_endpoints(session_id)
    body["cache_ttl"] = {
        "module": current.config.get("module_cache_ttl"),
        "manifest": current.config.get("manifest_cache_ttl"),
    }
    return JSONResponse(content=body, headers=headers)


@app.get("/sessions/{session_id}/modules")
async def list_modules(session_id: str):
    current = require_engine()
    session = current.store.require(session_id)
    modules = await asyncio.to_thread(current.preview.list_modules, session)
    return {"session_id": session_id, "modules": modules}


@app.get("/sessions/{session_id}/modules/{module_id}")
async def get_module(session_id: str, module_id: str, if_none_match: Optional[str] = Header(None)):
    """
    Screen definition: component code, helper code and metadata.

    A screen that fails to build still returns 200 with a placeholder
    component and the error text.
    """
    current = require_engine()
    session = current.store.require(session_id)
    definition, hit = await current.preview.get_definition(session, module_id)
    headers = fingerprint_headers(definition["fingerprint"], definition["built_at"], hit)
    if if_none_match and if_none_match == definition["fingerprint"]:
        return Response(status_code=304, headers=headers)
    return JSONResponse(content=definition, headers=headers)


@app.get("/sessions/{session_id}/modules/{module_id}/files/{file_name:path}")
async def read_module_file(session_id: str, module_id: str, file_name: str):
    current = require_engine()
    session = current.store.require(session_id)
    result = await current.preview.read_file(session, module_id, file_name)
    return JSONResponse(content=result, headers={"Cache-Control": NO_STORE})


@app.put("/sessions/{session_id}/modules/{module_id}/files/{file_name:path}")
async def write_module_file(session_id: str, module_id: str, file_name: str, request: FileUpdateRequest):
    current = require_engine()
    session = current.store.require(session_id)
    return await current.preview.write_file(session, module_id, file_name, request.content)


@app.get("/sessions/{session_id}/dependencies/{name:path}")
async def get_dependency(session_id: str, name: str):
    current = require_engine()
    session = current.store.require(session_id)
    return await current.preview.find_dependency(session, name)


@app.delete("/sessions/{session_id}/cache", response_model=CacheEvictionResponse)
async def clear_cache(session_id: str):
    current = require_engine()
    session = current.store.require(session_id)
    evicted = await current.preview.invalidate(session)
    return CacheEvictionResponse(session_id=session_id, evicted=evicted)


# Hot-Swap Endpoints


@app.post("/sessions/{session_id}/hot-reload")
async def hot_reload(session_id: str, request: HotReloadRequest):
    """
    Swap one screen in running previews.

    Returns:
        200: Swap result (applied, unchanged, superseded, or failed with the old version kept)
        202: Swap scheduled (debounce requested, or joined a file change still coalescing)
    """
    current = require_engine()
    if request.debounce:
        current.dispatcher.request(session_id, request.module_id)
        return JSONResponse(
            status_code=202,
            content={"session_id": session_id, "module_id": request.module_id, "scheduled": True},
        )
    result = await current.dispatcher.swap(session_id, request.module_id)
    if result.scheduled:
        return JSONResponse(status_code=202, content=SwapResultResponse(**result.to_dict()).model_dump())
    return SwapResultResponse(**result.to_dict())


@app.get("/sessions/{session_id}/changed-modules", response_model=ChangedModulesResponse)
async def changed_modules(session_id: str):
    current = require_engine()
    session = current.store.require(session_id)
    changed = session.notifier.changed_since_full_load() if session.notifier else []
    return ChangedModulesResponse(session_id=session_id, changed=changed)


@app.post("/sessions/{session_id}/apply-changes", response_model=ApplyChangesResponse)
async def apply_changes(session_id: str):
    current = require_engine()
    results = await current.dispatcher.apply_changes(session_id)
    return ApplyChangesResponse(
        session_id=session_id, results=[SwapResultResponse(**r.to_dict()) for r in results]
    )


@app.post("/sessions/{session_id}/inject", response_model=InjectionResponse)
async def inject_module(session_id: str, request: InjectModuleRequest):
    """
    Install a brand-new screen definition in running previews.

    Returns:
        200: Installed
        422: Code did not transform or evaluate; nothing was installed
    """
    current = require_engine()
    component = await current.dispatcher.inject(
        session_id, request.module_id, request.code, registry_key=request.registry_key
    )
    return InjectionResponse(
        session_id=session_id,
        module_id=component.module_id,
        registry_key=component.registry_key,
        version=component.version,
        fingerprint=component.fingerprint,
        binding=component.binding,
    )


@app.post("/sessions/{session_id}/navigation")
async def update_navigation(session_id: str, request: NavigationUpdateRequest):
    current = require_engine()
    return await current.dispatcher.update_navigation(session_id, request.config)


@app.get("/sessions/{session_id}/registry")
async def get_registry(session_id: str):
    current = require_engine()
    current.store.require(session_id)
    registry = current.dispatcher.registry(session_id)
    return {
        "session_id": session_id,
        "components": [c.to_dict(include_code=False) for c in registry.entries()],
        "navigation": registry.navigation,
    }


# Bundle Endpoints


@app.post("/sessions/{session_id}/bundle")
async def build_bundle(session_id: str):
    current = require_engine()
    session = current.store.require(session_id)
    bundle = await current.bundler.build(session)
    return {k: v for k, v in bundle.items() if k != "code"}


@app.get("/sessions/{session_id}/bundle.js")
async def get_bundle(session_id: str):
    current = require_engine()
    session = current.store.require(session_id)
    bundle = await current.bundler.get_bundle(session)
    return Response(
        content=bundle["code"],
        media_type="application/javascript",
        headers=fingerprint_headers(bundle["fingerprint"], bundle["build_time"]),
    )


# Event Stream


@app.get("/sessions/{session_id}/events")
async def session_events(session_id: str, last_event_id: Optional[int] = Header(None)):
    """
    SSE endpoint for preview clients.

    Clients receive file-changed, bundle-updated, bundle-error,
    screen-hot-reload, screen-injection and navigation-update events.
    Reconnecting clients send Last-Event-ID and get what they missed.

    Returns:
        SSE stream of preview events
        404: Session not found
    """
    current = require_engine()
    current.store.require(session_id)
    logger.info(f"Preview client connecting to session {session_id} via SSE")

    async def event_generator() -> AsyncGenerator:
        """Generate SSE events from the session's broker subscription."""
        subscription = current.broker.subscribe(session_id)
        try:
            yield {
                "event": "connected",
                "data": json.dumps({"status": "connected", "session_id": session_id}),
            }
            if last_event_id is not None:
                for event in current.broker.history(session_id, since_id=last_event_id):
                    yield event.to_sse()
            while True:
                event = await subscription.get()
                yield event.to_sse()
        except asyncio.CancelledError:
            logger.info(f"Preview client for session {session_id} disconnecting")
            raise
        finally:
            subscription.close()

    return EventSourceResponse(event_generator())


# Health/Monitoring Endpoints


@app.get("/healthz")
async def healthz():
    """
    Minimal health check endpoint for readiness/liveness probes.

    Returns:
        200: Service is running
    """
    return {"status": "ok"}


@app.get("/health")
async def health_check():
    """
    Detailed health check.

    Returns:
        200: Service healthy
        503: Service unhealthy
    """
    if engine is None:
        return JSONResponse(status_code=503, content={"status": "unhealthy", "modules": "not initialized"})

    redis_status = "not configured"
    if engine.storage is not None:
        try:
            await engine.storage.ping()
            redis_status = "connected"
        except InfrastructureError as e:
            logger.error(f"Health check failed: {e.message}")
            return JSONResponse(
                status_code=503,
                content={"status": "unhealthy", "redis": "disconnected", "error": e.message},
            )

    return {
        "status": "healthy",
        "redis": redis_status,
        "modules": "initialized",
        "version": __version__,
        **await engine.status(),
    }


# Error handlers


@app.exception_handler(LivescreenError)
async def livescreen_error_handler(request, exc: LivescreenError):
    """Map the error taxonomy onto HTTP status codes."""
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code}: {exc.message}")
    else:
        logger.info(f"{exc.error_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(redis.ConnectionError)
async def redis_error_handler(request, exc):
    """Handle Redis connection errors."""
    logger.error(f"Redis connection error: {exc}")
    return JSONResponse(status_code=503, content={"error": "Cache connection failed"})


@app.exception_handler(ValueError)
async def validation_error_handler(request, exc):
    """Handle validation errors."""
    logger.error(f"Validation error: {exc}")
    return JSONResponse(status_code=400, content={"error": str(exc)})


def main():
    # Use dict config for logging, not file path
    uvicorn.run(
        "livescreen.main:app",
        host=config.get("host"),
        port=config.get("port"),
        log_level=config.get("log_level").lower(),
        reload=config.get("debug"),
        log_config=get_logging_config(config.get("log_level")),
    )


if __name__ == "__main__":
    main()
