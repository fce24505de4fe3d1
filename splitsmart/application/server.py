"""FastAPI backend for a local single-user SplitSmart front end."""

from __future__ import annotations

import time
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from starlette.middleware.base import BaseHTTPMiddleware

from splitsmart.application.sessions import ExternalResult, SessionWorkspace
from splitsmart.receipt.serialization import (
    PayloadError,
    allocation_to_dict,
    amount_from_input,
    meta_to_dict,
    session_data_to_dict,
)
from splitsmart.runtime.ai_client import AIServiceClient
from splitsmart.runtime.config import load_config
from splitsmart.runtime.kv_store import FileKeyValueStore
from splitsmart.runtime.logging import get_logger
from splitsmart.runtime.paths import get_paths
from splitsmart.runtime.session_store import SessionStore

logger = get_logger(__name__)

StoreFactory = Callable[[], SessionStore]


class BadRequest(Exception):
    """Invalid request body or parameter; answered with HTTP 400."""


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and latency of every request."""

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        start_time = time.time()
        response = await call_next(request)
        logger.info(
            "%s %s -> %s (%.1f ms)",
            request.method,
            request.url.path,
            response.status_code,
            (time.time() - start_time) * 1000,
        )
        return response


def _default_store() -> SessionStore:
    paths = get_paths()
    paths.ensure_directories()
    return SessionStore(FileKeyValueStore(paths.store))


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"status": "error", "message": message}, status_code=status_code)


async def _json_body(request: Request) -> dict[str, Any]:
    body = await request.body()
    if not body:
        return {}
    try:
        data = await request.json()
    except ValueError as e:
        raise BadRequest(f"Invalid JSON body: {e}") from e
    if not isinstance(data, dict):
        raise BadRequest("JSON body must be an object")
    return data


def _amount(data: dict[str, Any], key: str) -> Decimal:
    try:
        return amount_from_input(data[key])
    except KeyError as e:
        raise BadRequest(f"Missing field: {key}") from e
    except PayloadError as e:
        raise BadRequest(str(e)) from e


def _text(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise BadRequest(f"Field {key!r} must be a non-empty string")
    return value


def _int(data: dict[str, Any], key: str) -> int:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise BadRequest(f"Field {key!r} must be an integer")
    return value


def session_payload(workspace: SessionWorkspace) -> dict[str, Any]:
    summary = workspace.summary()
    return {
        "id": workspace.session_id,
        **session_data_to_dict(workspace.data),
        "summary": allocation_to_dict(summary) if summary is not None else None,
    }


def _edit_response(workspace: SessionWorkspace, status: str) -> JSONResponse:
    if status != "saved":
        return _error(f"Not allowed while {workspace.state.value}", 409)
    return JSONResponse(session_payload(workspace))


def _external_response(workspace: SessionWorkspace, result: ExternalResult) -> JSONResponse:
    if result.status in ("rejected", "busy"):
        return _error(f"Not allowed while {workspace.state.value}", 409)
    return JSONResponse(
        {
            "status": result.status,
            "message": result.message,
            "session": session_payload(workspace),
        }
    )


async def _uploaded_image(request: Request) -> tuple[bytes, str]:
    form = await request.form()

    file = None
    for key, value in form.items():
        logger.debug("Form field: key=%r, type=%s", key, type(value))
        if hasattr(value, "read"):
            file = value
            break

    if file is None:
        raise BadRequest("No file found in request")
    filename = getattr(file, "filename", None) or "receipt.jpg"
    return await file.read(), filename


def create_app(
    store_factory: StoreFactory | None = None,
    ai_client: AIServiceClient | None = None,
) -> FastAPI:
    """Build the app. The session store is opened on startup and closed on shutdown."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        store = (store_factory or _default_store)().open()
        client = ai_client or AIServiceClient.from_config(load_config(get_paths().config_file))
        app.state.workspace = SessionWorkspace(store, client)
        logger.info("Session store opened, active session %s", store.active_id)
        try:
            yield
        finally:
            store.close()

    app = FastAPI(title="SplitSmart", lifespan=lifespan)
    app.add_middleware(RequestLoggingMiddleware)

    @app.exception_handler(BadRequest)
    async def bad_request(request: Request, exc: BadRequest) -> JSONResponse:
        return _error(str(exc), 400)

    def workspace_of(request: Request) -> SessionWorkspace:
        return request.app.state.workspace

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok"}

    # --- Sessions ---

    @app.get("/sessions")
    async def list_sessions(request: Request) -> JSONResponse:
        workspace = workspace_of(request)
        return JSONResponse(
            {
                "active_id": workspace.session_id,
                "sessions": [meta_to_dict(meta) for meta in workspace.sessions()],
            }
        )

    @app.post("/sessions")
    async def create_session(request: Request) -> JSONResponse:
        workspace = workspace_of(request)
        data = await _json_body(request)
        name = data.get("name")
        if name is not None and not isinstance(name, str):
            raise BadRequest("Field 'name' must be a string")
        workspace.new_session(name.strip() if name else None)
        return JSONResponse(session_payload(workspace), status_code=201)

    @app.post("/sessions/{session_id}/activate")
    async def activate_session(session_id: str, request: Request) -> JSONResponse:
        workspace = workspace_of(request)
        if not workspace.switch_session(session_id):
            return _error(f"Unknown session: {session_id}", 404)
        return JSONResponse(session_payload(workspace))

    @app.patch("/sessions/{session_id}")
    async def rename_session(session_id: str, request: Request) -> JSONResponse:
        workspace = workspace_of(request)
        name = _text(await _json_body(request), "name")
        if not any(meta.id == session_id for meta in workspace.sessions()):
            return _error(f"Unknown session: {session_id}", 404)
        workspace.rename_session(session_id, name)
        return JSONResponse({"status": "ok"})

    @app.delete("/sessions/{session_id}")
    async def delete_session(session_id: str, request: Request) -> JSONResponse:
        workspace = workspace_of(request)
        active_id = workspace.delete_session(session_id)
        return JSONResponse({"active_id": active_id})

    # --- Active session ---

    @app.get("/session")
    async def get_session(request: Request) -> JSONResponse:
        return JSONResponse(session_payload(workspace_of(request)))

    @app.post("/session/upload")
    async def upload_receipt(request: Request) -> JSONResponse:
        """Parse a receipt photo into the active session."""
        workspace = workspace_of(request)
        contents, filename = await _uploaded_image(request)
        result = await workspace.upload_receipt(contents, filename)
        return _external_response(workspace, result)

    @app.post("/session/append")
    async def append_receipt(request: Request) -> JSONResponse:
        """Parse another photo and merge its items into the active receipt."""
        workspace = workspace_of(request)
        contents, filename = await _uploaded_image(request)
        result = await workspace.append_receipt(contents, filename)
        return _external_response(workspace, result)

    @app.post("/session/chat")
    async def chat(request: Request) -> JSONResponse:
        workspace = workspace_of(request)
        text = _text(await _json_body(request), "text")
        return _external_response(workspace, await workspace.send_message(text))

    @app.post("/session/items")
    async def add_item(request: Request) -> JSONResponse:
        workspace = workspace_of(request)
        return _edit_response(workspace, workspace.add_item())

    @app.put("/session/items/{item_id}")
    async def edit_item(item_id: int, request: Request) -> JSONResponse:
        workspace = workspace_of(request)
        data = await _json_body(request)
        name = _text(data, "name") if "name" in data else None
        price = _amount(data, "price") if "price" in data else None
        quantity = None
        if "quantity" in data:
            quantity = _int(data, "quantity")
            if quantity < 1:
                raise BadRequest("Field 'quantity' must be at least 1")
        status = workspace.edit_item(item_id, name=name, price=price, quantity=quantity)
        return _edit_response(workspace, status)

    @app.delete("/session/items/{item_id}")
    async def delete_item(item_id: int, request: Request) -> JSONResponse:
        workspace = workspace_of(request)
        return _edit_response(workspace, workspace.delete_item(item_id))

    @app.post("/session/items/{item_id}/assignees")
    async def toggle_assignee(item_id: int, request: Request) -> JSONResponse:
        """Assign a person to an item, or unassign them if already assigned."""
        workspace = workspace_of(request)
        name = _text(await _json_body(request), "name")
        return _edit_response(workspace, workspace.toggle_assignment(item_id, name))

    @app.post("/session/items/{item_id}/weights")
    async def update_weight(item_id: int, request: Request) -> JSONResponse:
        workspace = workspace_of(request)
        data = await _json_body(request)
        status = workspace.update_weight(item_id, _text(data, "name"), _int(data, "delta"))
        return _edit_response(workspace, status)

    @app.put("/session/tax")
    async def set_tax(request: Request) -> JSONResponse:
        workspace = workspace_of(request)
        data = await _json_body(request)
        if "percent" in data:
            status = workspace.set_tax_percent(_amount(data, "percent"))
        else:
            status = workspace.set_tax(_amount(data, "amount"))
        return _edit_response(workspace, status)

    @app.put("/session/tip")
    async def set_tip(request: Request) -> JSONResponse:
        workspace = workspace_of(request)
        data = await _json_body(request)
        if "percent" in data:
            status = workspace.set_tip_percent(_amount(data, "percent"))
        else:
            status = workspace.set_tip(_amount(data, "amount"))
        return _edit_response(workspace, status)

    @app.post("/session/reset")
    async def reset(request: Request) -> JSONResponse:
        workspace = workspace_of(request)
        if workspace.reset() == "busy":
            return _error("A receipt is still being analyzed", 409)
        return JSONResponse(session_payload(workspace))

    @app.post("/session/dietary-tags")
    async def dietary_tags(request: Request) -> JSONResponse:
        workspace = workspace_of(request)
        return _external_response(workspace, await workspace.tag_dietary())

    @app.post("/session/roast")
    async def roast(request: Request) -> JSONResponse:
        workspace = workspace_of(request)
        return _external_response(workspace, await workspace.roast())

    # --- Preferences ---

    @app.get("/theme")
    async def get_theme(request: Request) -> JSONResponse:
        return JSONResponse({"theme": workspace_of(request).theme})

    @app.put("/theme")
    async def set_theme(request: Request) -> JSONResponse:
        workspace = workspace_of(request)
        theme = (await _json_body(request)).get("theme")
        if theme not in ("light", "dark"):
            raise BadRequest("Field 'theme' must be 'light' or 'dark'")
        workspace.set_theme(theme)
        return JSONResponse({"theme": theme})

    @app.get("/friends")
    async def list_friends(request: Request) -> JSONResponse:
        return JSONResponse({"friends": workspace_of(request).friends()})

    @app.post("/friends")
    async def add_friend(request: Request) -> JSONResponse:
        workspace = workspace_of(request)
        workspace.add_friend(_text(await _json_body(request), "name"))
        return JSONResponse({"friends": workspace.friends()})

    @app.delete("/friends/{name}")
    async def remove_friend(name: str, request: Request) -> JSONResponse:
        workspace = workspace_of(request)
        workspace.remove_friend(name)
        return JSONResponse({"friends": workspace.friends()})

    return app


def serve(host: str, port: int) -> None:
    import uvicorn

    uvicorn.run(create_app(), host=host, port=port)


if __name__ == "__main__":
    config = load_config(get_paths().config_file)
    serve(config.server.host, config.server.port)
