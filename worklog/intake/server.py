"""
Worklog Intake Server

FastAPI server receiving WeCom callbacks and turning chat messages into
work-log records.

Endpoints:
- GET  /api/wechat/webhook: Callback URL handshake
- POST /api/wechat/webhook: Message delivery
- GET  /api/wechat/config: Credential completeness report
- POST /api/wechat/config/check: Validate a client-supplied config
- POST /api/ai/extract: Classify chat text on demand
- POST /api/dev-logs/save: Save (upsert) a work-log record
- GET  /api/dev-logs: List work-log records
- GET  /health: Health check

Pipeline:
1. Verify the delivery signature
2. Decrypt and parse the inner envelope
3. Acknowledge immediately (WeCom retries deliveries not answered in time)
4. Classify the message text in the background
5. Build a work-log record and upsert it
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError

from ..common.config import (
    WorklogConfig,
    ensure_directories,
    load_config,
    resolve_client_config,
    validate_wecom_config,
)
from ..common.errors import ConfigurationFault, WorklogFault
from ..common.schemas import ApiResponse, ExtractRequest, WorkLogRecord
from .classifier import classify, combine_messages
from .crypto import WeComCrypto
from .handlers import ACKNOWLEDGMENT, InboundMessage, WeComHandler
from .record_builder import RecordBuilder
from .record_store import RecordStore

logger = logging.getLogger("worklog.intake.server")

router = APIRouter()


# =============================================================================
# Component wiring
# =============================================================================

def build_handler(config: WorklogConfig) -> Optional[WeComHandler]:
    """
    Build the WeCom handler from configuration.

    Returns None when webhook credentials are incomplete or malformed; the
    webhook endpoints then answer with a configuration fault.
    """
    valid, missing = validate_wecom_config(config.wecom, for_webhook=True)
    if not valid:
        logger.warning("WeCom webhook disabled, missing configuration: %s", ", ".join(missing))
        return None

    try:
        crypto = WeComCrypto(
            token=config.wecom.token,
            encoding_aes_key=config.wecom.encoding_aes_key,
            corp_id=config.wecom.corp_id,
        )
    except ConfigurationFault as e:
        logger.error("WeCom webhook disabled: %s", e)
        return None

    return WeComHandler(crypto)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Fill in any component not injected through create_app"""
    state = app.state

    if state.config is None:
        state.config = load_config()
    if state.store is None:
        state.store = RecordStore(Path(state.config.store.data_path))
    if state.handler is None:
        state.handler = build_handler(state.config)
    if state.builder is None:
        state.builder = RecordBuilder()

    logger.info(
        "Worklog intake ready (store: %s, webhook: %s)",
        state.store.data_path,
        "enabled" if state.handler else "disabled",
    )

    yield

    logger.info("Worklog intake shutting down")


def get_store(request: Request) -> RecordStore:
    return request.app.state.store


def get_builder(request: Request) -> RecordBuilder:
    return request.app.state.builder


def get_handler(request: Request) -> WeComHandler:
    """Configured WeCom handler, or a ConfigurationFault naming what is missing"""
    handler = request.app.state.handler
    if handler is None:
        _, missing = validate_wecom_config(request.app.state.config.wecom, for_webhook=True)
        raise ConfigurationFault(
            "WeCom webhook credentials unavailable",
            missing=missing or ["encodingAESKey"],
        )
    return handler


def _failure(status_code: int, error: str) -> JSONResponse:
    body = ApiResponse(success=False, error=error).model_dump(exclude_none=True)
    return JSONResponse(status_code=status_code, content=body)


async def fault_handler(request: Request, exc: WorklogFault) -> JSONResponse:
    """Render a fault as a structured failure; the detail stays in the log"""
    logger.warning(
        "%s on %s %s: %s",
        type(exc).__name__, request.method, request.url.path, exc,
    )
    body = ApiResponse(success=False, error=exc.public_message).model_dump(exclude_none=True)
    if isinstance(exc, ConfigurationFault) and exc.missing:
        body["missing"] = exc.missing
    return JSONResponse(status_code=exc.status_code, content=body)


# =============================================================================
# Background Tasks
# =============================================================================

def process_message(
    message: InboundMessage,
    handler: WeComHandler,
    builder: RecordBuilder,
    store: RecordStore,
) -> None:
    """
    Classify a delivered message and store the resulting record.

    Runs after the acknowledgment has been sent, so nothing raised here can
    reach the caller: every failure is logged and dropped.
    """
    try:
        if not handler.should_process(message):
            logger.debug("Skipping %s message %s", message.message_type, message.id)
            return

        result = classify(message.text_content)
        record = builder.build(
            result,
            source_messages=[message.text_content],
            message_id=message.id,
        )
        store.upsert(record)

        logger.info(
            "Stored record %s from message %s (category: %s, priority: %s)",
            record.id, message.id, record.category.value,
            record.priority.value if record.priority else "-",
        )
    except WorklogFault as e:
        logger.error("Processing message %s failed: %s", message.id, e)
    except Exception:
        logger.exception("Unexpected error processing message %s", message.id)


# =============================================================================
# Webhook Endpoints
# =============================================================================

@router.get("/api/wechat/webhook")
async def wechat_verify(
    msg_signature: Optional[str] = Query(None),
    timestamp: Optional[str] = Query(None),
    nonce: Optional[str] = Query(None),
    echostr: Optional[str] = Query(None),
    handler: WeComHandler = Depends(get_handler),
):
    """Callback URL handshake: echo the decrypted echostr"""
    plaintext = handler.verify_url(msg_signature, timestamp, nonce, echostr)
    logger.info("Callback URL verified")
    return PlainTextResponse(plaintext)


@router.post("/api/wechat/webhook")
async def wechat_deliver(
    request: Request,
    background_tasks: BackgroundTasks,
    msg_signature: Optional[str] = Query(None),
    timestamp: Optional[str] = Query(None),
    nonce: Optional[str] = Query(None),
    handler: WeComHandler = Depends(get_handler),
    builder: RecordBuilder = Depends(get_builder),
    store: RecordStore = Depends(get_store),
):
    """
    Receive a message delivery.

    The acknowledgment never waits for classification or persistence.
    """
    body = (await request.body()).decode("utf-8", errors="replace")

    message = handler.parse_delivery(body, msg_signature, timestamp, nonce)
    logger.info("Received %s message %s from %s", message.message_type, message.id, message.sender_id)

    background_tasks.add_task(process_message, message, handler, builder, store)

    return PlainTextResponse(ACKNOWLEDGMENT)


# =============================================================================
# Configuration Endpoints
# =============================================================================

@router.get("/api/wechat/config")
async def wechat_config_status(request: Request):
    """Which credentials are configured (never the values themselves)"""
    config: WorklogConfig = request.app.state.config
    valid, missing = validate_wecom_config(config.wecom, for_webhook=True)
    return ApiResponse[Dict[str, Any]](
        success=True,
        data={
            "enabled": config.wecom.enabled,
            "valid": valid,
            "missing": missing,
            "webhookReady": request.app.state.handler is not None,
        },
    ).model_dump(exclude_none=True)


@router.post("/api/wechat/config/check")
async def wechat_config_check(
    request: Request,
    overrides: Dict[str, Any],
    for_webhook: bool = Query(False, alias="forWebhook"),
):
    """Validate a client-supplied config; environment values take precedence"""
    config: WorklogConfig = request.app.state.config
    resolved = resolve_client_config(config, overrides)
    valid, missing = validate_wecom_config(resolved, for_webhook=for_webhook)
    return ApiResponse[Dict[str, Any]](
        success=True,
        data={"valid": valid, "missing": missing},
    ).model_dump(exclude_none=True)


# =============================================================================
# Extraction and Record Endpoints
# =============================================================================

@router.post("/api/ai/extract")
async def extract(payload: ExtractRequest):
    """Classify chat messages into a work-log template"""
    if not isinstance(payload.messages, list) or not payload.messages:
        return _failure(400, "messages must be a non-empty list")

    result = classify(combine_messages(payload.messages), project=payload.project)
    return ApiResponse[Dict[str, Any]](
        success=True,
        data=result.to_json_dict(),
    ).model_dump(exclude_none=True)


@router.post("/api/dev-logs/save")
async def save_dev_log(
    payload: Dict[str, Any],
    store: RecordStore = Depends(get_store),
):
    """Save a work-log record, replacing any record with the same id"""
    if not payload.get("id") or not payload.get("title") or not (
        payload.get("type") or payload.get("category")
    ):
        return _failure(400, "incomplete record: id, title and type are required")

    now = datetime.now(timezone.utc)
    data = dict(payload)
    data.setdefault("createdAt", now.isoformat())
    data.setdefault("updatedAt", now.isoformat())
    data.setdefault("date", now.strftime("%Y-%m-%d"))

    try:
        record = WorkLogRecord.model_validate(data)
    except ValidationError as e:
        logger.info("Rejected record %s: %s", payload.get("id"), e)
        return _failure(400, f"invalid record: {e.error_count()} field error(s)")

    stored = store.upsert(record)
    return ApiResponse[Dict[str, Any]](
        success=True,
        data=stored.to_json_dict(),
        message="record saved",
    ).model_dump(exclude_none=True)


@router.get("/api/dev-logs")
async def list_dev_logs(
    category: Optional[str] = Query(None),
    project: Optional[str] = Query(None),
    store: RecordStore = Depends(get_store),
):
    """List records, optionally filtered by category and project"""
    records: List[WorkLogRecord] = store.list_all()
    if category:
        records = [r for r in records if r.category.value == category]
    if project:
        records = [r for r in records if r.project == project]

    return ApiResponse[List[Dict[str, Any]]](
        success=True,
        data=[r.to_json_dict() for r in records],
    ).model_dump(exclude_none=True)


@router.get("/health")
async def health(request: Request):
    """Health check endpoint"""
    state = request.app.state
    return {
        "status": "healthy",
        "service": "worklog-intake",
        "webhook_enabled": state.handler is not None,
        "store": str(state.store.data_path) if state.store else None,
    }


# =============================================================================
# Application
# =============================================================================

def create_app(
    config: Optional[WorklogConfig] = None,
    store: Optional[RecordStore] = None,
    handler: Optional[WeComHandler] = None,
    builder: Optional[RecordBuilder] = None,
) -> FastAPI:
    """
    Create the intake application.

    Components not given here are built from configuration at startup.
    """
    app = FastAPI(
        title="Worklog Intake",
        description="WeCom message intake and work-log extraction",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.store = store
    app.state.handler = handler
    app.state.builder = builder

    app.add_exception_handler(WorklogFault, fault_handler)
    app.include_router(router)
    return app


app = create_app()


# =============================================================================
# CLI Entry Point
# =============================================================================

def run_server():
    """Run the intake server"""
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    config = load_config()
    ensure_directories(config)
    logger.info("Starting server on %s:%s", config.server.host, config.server.port)
    uvicorn.run(
        "worklog.intake.server:app",
        host=config.server.host,
        port=config.server.port,
        reload=False,
    )


if __name__ == "__main__":
    run_server()
