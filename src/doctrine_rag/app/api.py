# doctrine_rag/app/api.py
from __future__ import annotations

import json
import logging
import os
from typing import Any, AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.datastructures import UploadFile

from doctrine_rag.app.container import build_container
from doctrine_rag.common import AnswerMetadata, DoctrineRAGError, InputError
from doctrine_rag.config import GlobalConfig

app = FastAPI(title="Doctrine RAG API", version="0.1.0")
logger = logging.getLogger("doctrine_rag.api")

DEFAULT_CONFIG_PATH = "config/config.yaml"


class AgentResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    answer: str
    source: str
    context: str
    has_more_context: bool = Field(alias="hasMoreContext")


class ErrorResponse(BaseModel):
    error: str
    detail: str | None = None


def _as_bool(value: Any) -> bool | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


async def _read_upload(value: Any) -> bytes | None:
    if isinstance(value, UploadFile):
        data = await value.read()
        return data or None
    return None


async def _parse_request(request: Request) -> tuple[str | None, bytes | None, str | None, bool | None]:
    """Return ``(query, pdf_bytes, csv_text, stream)`` from a JSON or form body."""
    content_type = request.headers.get("content-type", "")

    if content_type.startswith("multipart/form-data") or content_type.startswith(
        "application/x-www-form-urlencoded"
    ):
        form = await request.form()
        pdf_bytes = await _read_upload(form.get("pdf"))
        csv_bytes = await _read_upload(form.get("csv"))
        csv_text = None
        if csv_bytes is not None:
            try:
                csv_text = csv_bytes.decode("utf-8-sig")
            except UnicodeDecodeError as exc:
                raise InputError("CSV upload must be UTF-8 text") from exc
        query = form.get("query")
        return (query if isinstance(query, str) else None), pdf_bytes, csv_text, _as_bool(form.get("stream"))

    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InputError("Request body must be JSON or multipart form data") from exc
    if not isinstance(body, dict):
        raise InputError("Request body must be a JSON object")

    query = body.get("query")
    return (query if isinstance(query, str) else None), None, None, _as_bool(body.get("stream"))


def _error(status_code: int, error: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, detail=detail).model_dump(exclude_none=True),
    )


async def _stream_body(metadata: AnswerMetadata, tokens: AsyncIterator[str]) -> AsyncIterator[str]:
    yield json.dumps({"type": "metadata", "data": metadata.to_dict()}) + "\n"
    async for token in tokens:
        yield token


@app.on_event("startup")
def startup():
    if getattr(app.state, "container", None) is not None:
        return

    cfg_path = os.environ.get("DOCTRINE_CONFIG", DEFAULT_CONFIG_PATH)
    cfg = GlobalConfig.load(cfg_path)

    level = str(cfg.logging.get("level", "INFO")).upper()
    logging.basicConfig(
        level=level,
        format=cfg.logging.get("format", "%(asctime)s %(levelname)s %(name)s: %(message)s"),
    )
    logger.info("Loaded configuration from %s", cfg.config_path)
    app.state.container = build_container(cfg)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/api/agent")
async def agent(request: Request):
    container = app.state.container
    try:
        query, pdf_bytes, csv_text, stream = await _parse_request(request)
        if stream is None:
            stream = container.stream_default

        result = await container.pipeline.run(query, pdf_bytes=pdf_bytes, csv_text=csv_text, stream=stream)
    except InputError as e:
        logger.warning("Rejected /api/agent request: %s", e)
        return _error(400, str(e))
    except DoctrineRAGError as e:
        logger.exception("Error while handling /api/agent")
        return _error(500, "Internal server error", str(e))
    except Exception as e:
        logger.exception("Unexpected error while handling /api/agent")
        return _error(500, "Internal server error", type(e).__name__)

    if result.streaming:
        return StreamingResponse(
            _stream_body(result.metadata, result.tokens),
            media_type="text/plain; charset=utf-8",
        )

    response = AgentResponse(
        answer=result.answer or "",
        source=result.metadata.source,
        context=result.metadata.context,
        has_more_context=result.metadata.has_more_context,
    )
    return response.model_dump(by_alias=True)
