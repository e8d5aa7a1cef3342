"""FastAPI entrypoint for chat, leave submission, trace and metric endpoints."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import asdict
from typing import Any

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from sap_assistant.api.context import AppContext, build_context
from sap_assistant.config import configure_logging
from sap_assistant.errors import AssistantError, UpstreamUnavailable
from sap_assistant.types import ResponsePayload, TextPayload

logger = logging.getLogger(__name__)

LEAVE_SUBMITTED_TEXT = (
    "Thanks! Your leave application has been successfully submitted and saved."
)


class ChatMessage(BaseModel):
    sender: str = "user"
    text: str


class ChatRequest(BaseModel):
    messageHistory: list[ChatMessage] = Field(min_length=1)


def create_app(context: AppContext | None = None) -> FastAPI:
    ctx = context or build_context()
    app = FastAPI(title="SAP Assistant", version="0.1.0")
    app.state.context = ctx

    @app.exception_handler(AssistantError)
    async def assistant_error_handler(request: Request, exc: AssistantError) -> JSONResponse:
        if isinstance(exc, UpstreamUnavailable):
            detail = exc.message
        else:
            detail = str(exc)
        logger.error("Request to %s failed: %s", request.url.path, detail)
        return JSONResponse(status_code=exc.status_code, content={"error": detail})

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "llm_configured": ctx.llm is not None,
            "planner_mode": ctx.planner_mode,
            "datasets": ctx.datasets.sizes(),
            "tools": ctx.registry.names(),
            "trace_count": len(ctx.trace_store),
        }

    @app.post("/api/chat", response_model=ResponsePayload, response_model_by_alias=True)
    async def chat(request: ChatRequest, response: Response) -> Any:
        utterance = request.messageHistory[-1].text
        result = await ctx.planner.ainvoke(utterance)
        response.headers["X-Trace-Id"] = result.trace_id
        return result.payload

    @app.post("/api/submit-leave", response_model=TextPayload)
    async def submit_leave(payload: dict[str, Any]) -> Any:
        if not payload:
            logger.error("Invalid leave data received")
            return JSONResponse(status_code=400, content={"error": "Invalid leave data provided."})
        try:
            await ctx.leave_store.submit(payload)
        except sqlite3.Error as exc:
            logger.error("Error saving leave application: %s", exc)
            return JSONResponse(
                status_code=500, content={"error": "Failed to save the leave application."}
            )
        return TextPayload(content=LEAVE_SUBMITTED_TEXT)

    @app.get("/traces")
    def traces(limit: int = 20) -> dict[str, Any]:
        records = [asdict(record) for record in ctx.trace_store.list_recent(limit=limit)]
        return {"items": records}

    @app.get("/traces/{trace_id}")
    def trace_detail(trace_id: str) -> dict[str, Any]:
        try:
            record = ctx.trace_store.get(trace_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return asdict(record)

    @app.get("/metrics")
    def metrics() -> dict[str, Any]:
        return ctx.trace_store.summary()

    return app


configure_logging()
app = create_app()
