import json
import logging
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict

from fastapi import Body, Depends, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .agent import CommandOrchestrator, build_orchestrator
from .services.state_service import InvalidExportError, build_state_service, close_state_service
from .settings import get_settings


def setup_server_logging(level: str = "INFO") -> logging.Logger:
    """Configure and return the server logger."""
    logs_dir = Path("logs")
    logs_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger("ghlops")
    if logger.handlers:
        return logging.getLogger("ghlops.server")

    logger.setLevel(level)
    fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s")

    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    fh = RotatingFileHandler(logs_dir / "server.log", maxBytes=5_000_000, backupCount=3)
    fh.setFormatter(fmt)
    logger.addHandler(fh)

    return logging.getLogger("ghlops.server")


def _cors_origins_list(origins: str) -> list[str]:
    """Parse CORS_ORIGINS into a list."""
    if not origins or origins.strip() == "*":
        return ["*"]
    return [o.strip() for o in origins.split(",") if o.strip()]


settings = get_settings()
LOGGER = setup_server_logging(settings.log_level)


class CommandRequest(BaseModel):
    command: str = Field(min_length=1)


class ConfigUpdate(BaseModel):
    ghlToken: str | None = None
    locationId: str | None = None
    openaiApiKey: str | None = None
    voiceEnabled: bool | None = None
    autoConfirm: bool | None = None
    theme: str | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the state store and orchestrator at startup; release them on shutdown."""
    state = await build_state_service(settings)
    app.state.orchestrator = await build_orchestrator(settings, state)
    LOGGER.info("Orchestrator ready (%d tools)", len(app.state.orchestrator.catalog))

    yield

    LOGGER.info("Shutting down...")
    await app.state.orchestrator.aclose()
    await close_state_service(state)


app = FastAPI(
    title="GHLOps Command Assistant",
    version="0.1.0",
    debug=settings.debug,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins_list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_orchestrator(request: Request) -> CommandOrchestrator:
    return request.app.state.orchestrator


@app.get("/health")
async def health() -> dict[str, Any]:
    """Health check for load balancers and monitoring."""
    return {"status": "ok"}


@app.post("/api/commands")
async def submit_command(
    body: CommandRequest, orchestrator: CommandOrchestrator = Depends(get_orchestrator)
) -> Dict[str, Any]:
    """Run one command; 409 while another command is still processing."""
    message = await orchestrator.process_command(body.command.strip())
    if message is None:
        raise HTTPException(status_code=409, detail="A command is already being processed")
    return {"message": message.to_dict(), "metrics": orchestrator.metrics.to_dict()}


@app.get("/api/messages")
async def list_messages(orchestrator: CommandOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    return {"messages": [m.to_dict() for m in orchestrator.messages]}


@app.delete("/api/messages")
async def clear_messages(orchestrator: CommandOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    await orchestrator.clear_messages()
    return {"cleared": True}


@app.get("/api/metrics")
async def metrics(orchestrator: CommandOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    return orchestrator.metrics.to_dict()


@app.get("/api/summary")
async def summary(orchestrator: CommandOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    return orchestrator.conversation_summary()


@app.get("/api/connection")
async def connection(orchestrator: CommandOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    return orchestrator.health.snapshot()


@app.post("/api/connection/test")
async def test_connection(orchestrator: CommandOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    ok = await orchestrator.test_connection()
    return {"connected": ok, **orchestrator.health.snapshot()}


@app.get("/api/config")
async def read_config(orchestrator: CommandOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    config = await orchestrator.state.load_config()
    return {**config.redacted(), "isConfigured": config.is_configured}


@app.put("/api/config")
async def update_config(
    body: ConfigUpdate, orchestrator: CommandOrchestrator = Depends(get_orchestrator)
) -> Dict[str, Any]:
    config = await orchestrator.update_config(body.model_dump(exclude_none=True))
    return {**config.redacted(), "isConfigured": config.is_configured}


@app.delete("/api/config")
async def clear_config(orchestrator: CommandOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    config = await orchestrator.clear_config()
    return {**config.redacted(), "isConfigured": config.is_configured}


@app.get("/api/tools")
async def tools(orchestrator: CommandOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    catalog = orchestrator.catalog
    return {
        "endpoint": catalog.endpoint_info(settings.ghl_mcp_url),
        "categories": catalog.by_category(),
    }


@app.get("/api/export")
async def export_conversation(orchestrator: CommandOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    return await orchestrator.export_conversation()


@app.post("/api/import")
async def import_messages(
    document: Any = Body(...), orchestrator: CommandOrchestrator = Depends(get_orchestrator)
) -> Dict[str, Any]:
    try:
        count = await orchestrator.import_messages(document)
    except InvalidExportError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return {"imported": count}


@app.websocket("/ws/chat")
async def chat_ws(websocket: WebSocket) -> None:
    """WebSocket chat endpoint: client sends { message }, server replies with the final message.

    Response Format:
        - {"type": "status", "data": "processing"}
        - {"type": "message", "data": {...}} - final assistant message
        - {"type": "done", "metrics": {...}}
        - {"type": "error", "data": str}
    """
    await websocket.accept()
    orchestrator: CommandOrchestrator = websocket.app.state.orchestrator
    try:
        raw = await websocket.receive_text()
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            LOGGER.error("Invalid WS payload (not JSON): %s", e)
            await websocket.send_json({"type": "error", "data": "Invalid JSON payload"})
            await websocket.close()
            return

        command = str(payload.get("message") or "").strip() if isinstance(payload, dict) else ""
        if not command:
            await websocket.send_json({"type": "error", "data": "Empty message"})
            await websocket.close()
            return

        if orchestrator.is_processing:
            await websocket.send_json({"type": "error", "data": "A command is already being processed"})
            await websocket.close()
            return

        await websocket.send_json({"type": "status", "data": "processing"})
        message = await orchestrator.process_command(command)
        if message is None:
            await websocket.send_json({"type": "error", "data": "A command is already being processed"})
        else:
            await websocket.send_json({"type": "message", "data": message.to_dict()})
            await websocket.send_json({"type": "done", "metrics": orchestrator.metrics.to_dict()})
        await websocket.close()

    except WebSocketDisconnect:
        LOGGER.info("WS disconnect")


def run() -> None:
    import uvicorn

    uvicorn.run("ghlops.main:app", host=settings.host, port=settings.port)
