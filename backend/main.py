import asyncio
import json
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as SchemaError

from config import (
    FRONTEND_URL, MOCK_IMAGE_PATH, MOCK_IMAGE_LABELS, MOCK_QR_USERNAME, SELECTION_SIZE,
    MSG_NAME_REQUIRED, MSG_QR_REQUIRED, MSG_WRONG_PASSWORD, MSG_SERVICE_ERROR,
)
from processing.controller import CredentialChallengeController
from schemas.messages import (
    LookupByNameRequest, LookupByQrRequest, VerifyRequest,
    LookupResponse, VerifyResponse, ErrorResponse, ErrorMessage, LoginCommand,
)
from services.loader import load_all_services

logger = logging.getLogger("uvicorn.error")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # A registry injected before startup (tests, embedding apps) is kept as is
    if getattr(app.state, "services", None) is None:
        logger.info("Creating collaborator clients...")
        app.state.services = load_all_services()
    logger.info("Server ready.")
    yield
    await app.state.services.aclose()
    app.state.services = None


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(ErrorResponse(error=message).model_dump(), status_code=status_code)


async def _read_body(request: Request, model):
    """Parse the JSON body into ``model``; None when it is not usable JSON."""
    try:
        return model.model_validate(await request.json())
    except (ValueError, SchemaError) as e:
        # ValueError covers both malformed JSON and bytes that are not UTF-8
        logger.warning(f"{request.url.path}: bad body ({type(e).__name__})")
        return None


@app.get("/health")
async def health():
    return {"status": "ok", "base_url": str(app.state.services.http.base_url)}


# --- Mock collaborators ---

@app.post("/api/login")
async def lookup_by_name(request: Request):
    body = await _read_body(request, LookupByNameRequest)
    if body is None:
        return _error(MSG_SERVICE_ERROR, 500)
    if not body.inputUsername:
        return _error(MSG_NAME_REQUIRED, 400)

    return LookupResponse(
        status="next_step",
        img_list=[MOCK_IMAGE_PATH] * len(MOCK_IMAGE_LABELS),
        img_name=MOCK_IMAGE_LABELS,
    ).model_dump(include={"status", "img_list", "img_name"})


@app.post("/api/login_qr")
async def lookup_by_qr(request: Request):
    body = await _read_body(request, LookupByQrRequest)
    if body is None:
        return _error(MSG_SERVICE_ERROR, 500)
    logger.info(f"Received QR data: {body.qr_data!r}")
    if not body.qr_data:
        return _error(MSG_QR_REQUIRED, 400)

    return LookupResponse(
        status="success",
        password=True,
        username=MOCK_QR_USERNAME,
    ).model_dump(include={"status", "password", "username"})


@app.post("/api/login_registrer")
async def verify_challenge(request: Request):
    body = await _read_body(request, VerifyRequest)
    if body is None:
        return _error(MSG_SERVICE_ERROR, 500)

    if body.images and len(body.images) == SELECTION_SIZE:
        return VerifyResponse(password=True).model_dump(exclude_none=True)
    return VerifyResponse(password=False, error=MSG_WRONG_PASSWORD).model_dump()


# --- Login driver ---

@app.websocket("/ws/login")
async def login_session(websocket: WebSocket):
    await websocket.accept()
    services = websocket.app.state.services
    controller = CredentialChallengeController(services.identity, services.verification)
    pending: set[asyncio.Task] = set()

    logger.info("WS login session started")

    async def send_state():
        try:
            await websocket.send_json(controller.snapshot().model_dump())
        except (WebSocketDisconnect, RuntimeError):
            pass

    async def run_then_report(operation):
        await operation
        await send_state()

    async def spawn(operation):
        # Long calls run beside the reader so reset and repeat clicks still arrive
        task = asyncio.create_task(run_then_report(operation))
        pending.add(task)
        task.add_done_callback(pending.discard)
        # Let the operation reach its busy step before the next snapshot
        await asyncio.sleep(0)

    async def handle(command: LoginCommand):
        if command.type == "submit_identity":
            await spawn(controller.submit_identity(command.username or ""))
        elif command.type == "submit_qr":
            await spawn(controller.submit_qr_payload(command.qr_data or ""))
        elif command.type == "submit_challenge":
            await spawn(controller.submit_challenge())
        elif command.type == "toggle":
            if command.index is None:
                await websocket.send_json(ErrorMessage(message="toggle needs an index").model_dump())
                return
            controller.toggle_selection(command.index)
        elif command.type == "cancel":
            controller.cancel_challenge()
        elif command.type == "reset":
            logger.info("WS login reset command received")
            controller.reset()
        else:
            await websocket.send_json(ErrorMessage(message=f"Unknown command: {command.type}").model_dump())
            return
        await send_state()

    try:
        await send_state()
        while True:
            message = await websocket.receive_text()
            try:
                command = LoginCommand.model_validate(json.loads(message))
            except (ValueError, SchemaError):
                await websocket.send_json(ErrorMessage(message="Could not parse command").model_dump())
                continue
            await handle(command)

    except (WebSocketDisconnect, RuntimeError) as e:
        logger.info(f"WS login session ended: {type(e).__name__}: {e}")
    finally:
        controller.reset()
        for task in list(pending):
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        logger.info(f"WS login cleanup: final step={controller.step.value}")
