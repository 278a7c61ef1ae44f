from __future__ import annotations

import logging
import sys
import time
from pathlib import Path
from threading import Lock
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .completion import CompletionClient, UpstreamError, build_completion_client
from .config import Settings, configure_logging, get_settings
from .context import assemble_context
from .middleware import BodyLimitMiddleware, PreflightMiddleware, request_guard
from .prompts import load_system_prompt
from .responses import fail, ok
from .schemas import ChatRequest, LoginRequest, SignupRequest, json_body
from .store import ConversationLog, RecordStore, UserDirectory


logger = logging.getLogger("relaychat")

DEFAULT_PAGE = "login.html"

# every method except POST and OPTIONS falls through to the static root
STATIC_METHODS = ["GET", "HEAD", "PUT", "PATCH", "DELETE"]


def now_ms() -> int:
    return int(time.time() * 1000)


class GuestIdFactory:
    """Issues ``guest_<ms>`` ids, bumping the timestamp so no two calls collide."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._last = 0

    def __call__(self) -> str:
        with self._lock:
            self._last = max(now_ms(), self._last + 1)
            return f"guest_{self._last}"


def resolve_static_path(base_dir: Path, url_path: str) -> Optional[Path]:
    """Map a URL path into ``base_dir``. Returns None when it escapes the root."""
    base = base_dir.resolve()
    target = url_path.lstrip("/") or DEFAULT_PAGE
    resolved = (base / target).resolve()
    if resolved != base and base not in resolved.parents:
        return None
    return resolved


def create_app(
    settings: Optional[Settings] = None,
    completion_client: Optional[CompletionClient] = None,
) -> FastAPI:
    settings = settings or get_settings()

    store = RecordStore(settings.data_dir, corrupt_policy=settings.corrupt_policy)
    users = UserDirectory(store)
    chats = ConversationLog(store)
    client = completion_client or build_completion_client(settings)
    system_prompt = load_system_prompt(settings.prompt_path)
    static_root = Path(settings.static_dir)
    new_guest_id = GuestIdFactory()

    app = FastAPI(title="relaychat", version="0.1.0")
    app.state.settings = settings
    app.state.users = users
    app.state.chats = chats
    app.state.completion_client = client

    app.add_middleware(BodyLimitMiddleware, max_body_bytes=settings.max_body_bytes)
    app.middleware("http")(request_guard(settings.debug_mock))
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["POST", "GET", "OPTIONS"],
        allow_headers=["Content-Type"],
    )
    app.add_middleware(PreflightMiddleware)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return fail(exc.status_code, str(exc.detail))

    @app.post("/signup")
    def signup(payload: SignupRequest = Depends(json_body(SignupRequest))):
        if payload.auth_code != settings.signup_auth_code:
            raise HTTPException(status_code=400, detail="Invalid auth code.")
        if not payload.user_id or not payload.password:
            raise HTTPException(status_code=400, detail="userId and password are required.")
        if not users.register(payload.user_id, payload.password):
            raise HTTPException(status_code=409, detail="Account already exists.")

        logger.info("[SIGNUP] userId=%s", payload.user_id)
        return ok(msg="Signup successful!")

    @app.post("/login")
    def login(payload: LoginRequest = Depends(json_body(LoginRequest))):
        if payload.role == "guest":
            guest_id = new_guest_id()
            logger.info("[LOGIN] guestId=%s", guest_id)
            return ok(userId=guest_id, role="guest")

        if not payload.user_id or not payload.password:
            raise HTTPException(status_code=400, detail="userId and password are required.")
        user = users.authenticate(payload.user_id, payload.password)
        if user is None:
            raise HTTPException(status_code=401, detail="Wrong userId or password.")

        logger.info("[LOGIN] userId=%s role=%s", user["userId"], user.get("role"))
        return ok(userId=user["userId"], role=user.get("role"))

    @app.post("/chat")
    async def chat(payload: ChatRequest = Depends(json_body(ChatRequest))):
        if not payload.question:
            raise HTTPException(status_code=400, detail="question is required.")

        messages = assemble_context(chats, payload.user_id, payload.question, system_prompt, settings.recent_pairs)

        try:
            answer = await client.complete(messages)
        except UpstreamError as e:
            logger.error("[CHAT] AI call failed for userId=%s: %s", payload.user_id, e)
            return fail(500, "AI call failed.", details=str(e) if settings.debug_mock else None)

        chats.append(
            {
                "userId": payload.user_id,
                "role": payload.role,
                "question": payload.question,
                "answer": answer,
                "timestamp": now_ms(),
            }
        )
        logger.info("[CHAT] userId=%s question=%r", payload.user_id, payload.question)
        return ok(answer=answer)

    @app.post("/{path:path}")
    def unknown_post(path: str):
        raise HTTPException(status_code=404, detail="Unknown POST path.")

    @app.api_route("/{path:path}", methods=STATIC_METHODS)
    def static_file(path: str):
        resolved = resolve_static_path(static_root, path)
        if resolved is None:
            logger.warning("[GET] 400 path escapes static root: %s", path)
            raise HTTPException(status_code=400, detail="Bad request")
        if not resolved.is_file():
            logger.info("[GET] 404 %s", path)
            raise HTTPException(status_code=404, detail="Not found")
        return FileResponse(resolved)

    return app


def _log_uncaught(exc_type, exc, tb) -> None:
    logger.critical("Uncaught exception", exc_info=(exc_type, exc, tb))


def run() -> None:
    import uvicorn

    settings = get_settings()
    configure_logging(settings.log_level)
    sys.excepthook = _log_uncaught
    app = create_app(settings)
    logger.info("Server running on port %s", settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
