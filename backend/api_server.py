from __future__ import annotations

import asyncio
import os
from typing import Any, Dict, List

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, ValidationError

from appium_session import (
    HttpAppiumSession,
    NoActiveSessionError,
    SessionRequestError,
    clear_active_session,
    get_active_session,
    set_active_session,
)
from locator_validation import LocatorFileError, check_locators_from_file
from logging_utils import LOG_CAPTURE_ENABLED, close_log_capture, log_line, setup_log_capture
from page_model import ParseError
from snapshot_service import capture_snapshot
from tool_registry import ToolRegistry

LOCATOR_VALIDATION_TIMEOUT = float(os.getenv("LOCATOR_VALIDATION_TIMEOUT", "120"))
API_HOST = os.getenv("LOCATOR_API_HOST", "127.0.0.1")
API_PORT = int(os.getenv("LOCATOR_API_PORT", "8000"))


class GenerateLocatorsRequest(BaseModel):
    interactableOnly: bool = True


class CheckLocatorsRequest(BaseModel):
    locatorFilePath: str = Field(..., min_length=1)


class SessionCreateRequest(BaseModel):
    capabilities: Dict[str, Any] = Field(default_factory=dict)


class ToolRunRequest(BaseModel):
    tool: str = Field(..., min_length=1)
    args: Dict[str, Any] = Field(default_factory=dict)


registry = ToolRegistry()


@registry.register("generate_locators")
async def generate_locators_tool(args: Dict[str, Any]) -> Dict[str, Any]:
    request = GenerateLocatorsRequest(**args)
    snapshot = await capture_snapshot(get_active_session(), interactable_only=request.interactableOnly)
    return snapshot.to_dict()


@registry.register("check_locators_from_file")
async def check_locators_tool(args: Dict[str, Any]) -> Dict[str, Any]:
    request = CheckLocatorsRequest(**args)
    # Partial results are dropped on timeout.
    report = await asyncio.wait_for(
        check_locators_from_file(request.locatorFilePath, get_active_session()),
        timeout=LOCATOR_VALIDATION_TIMEOUT,
    )
    return report.to_dict()


_TOOL_OPERATIONS = {
    "generate_locators": "generate locators",
    "check_locators_from_file": "check locators",
}


def _error_status(error: Exception) -> int:
    if isinstance(error, (LocatorFileError, ValidationError)):
        return 400
    if isinstance(error, NoActiveSessionError):
        return 409
    if isinstance(error, (ParseError, SessionRequestError)):
        return 502
    if isinstance(error, asyncio.TimeoutError):
        return 504
    return 500


async def _invoke(tool: str, args: Dict[str, Any]) -> Dict[str, Any]:
    if tool not in registry.names():
        raise HTTPException(status_code=404, detail=f"Unknown tool: {tool}")
    try:
        return await registry.run(tool, args)
    except (LocatorFileError, ValidationError, NoActiveSessionError, ParseError,
            SessionRequestError, asyncio.TimeoutError) as e:
        message = str(e) or f"timed out after {LOCATOR_VALIDATION_TIMEOUT:g}s"
        operation = _TOOL_OPERATIONS.get(tool, f"run {tool}")
        raise HTTPException(status_code=_error_status(e), detail=f"Failed to {operation}: {message}")


app = FastAPI(
    title="Locator Service API",
    version="0.1.0",
    description="Locator generation and self-healing validation for Appium sessions.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def healthcheck() -> Dict[str, Any]:
    return {"status": "ok", "sessionActive": get_active_session() is not None}


@app.get("/api/tools")
def list_tools() -> List[Dict[str, Any]]:
    return registry.definitions()


@app.post("/api/session", status_code=201)
async def create_session(payload: SessionCreateRequest) -> Dict[str, Any]:
    loop = asyncio.get_running_loop()
    try:
        session = await loop.run_in_executor(None, HttpAppiumSession.create, payload.capabilities)
    except SessionRequestError as e:
        raise HTTPException(status_code=502, detail=str(e))
    set_active_session(session)
    return {"sessionId": session.session_id, "automationName": session.automation_name}


@app.delete("/api/session")
async def delete_session() -> Dict[str, str]:
    session = clear_active_session()
    if session is None:
        raise HTTPException(status_code=404, detail="No active session")
    if isinstance(session, HttpAppiumSession):
        await asyncio.get_running_loop().run_in_executor(None, session.close)
    return {"status": "detached"}


@app.post("/api/locators/generate")
async def generate_locators(payload: GenerateLocatorsRequest) -> Dict[str, Any]:
    return await _invoke("generate_locators", payload.model_dump())


@app.post("/api/locators/check")
async def check_locators(payload: CheckLocatorsRequest) -> Dict[str, Any]:
    return await _invoke("check_locators_from_file", payload.model_dump())


@app.post("/tools/run")
async def run_tool(payload: ToolRunRequest) -> Dict[str, Any]:
    result = await _invoke(payload.tool, payload.args)
    return {"success": True, "tool": payload.tool, "result": result}


def create_app() -> FastAPI:
    return app


def main() -> None:
    import uvicorn

    if LOG_CAPTURE_ENABLED:
        log_path = setup_log_capture()
        if log_path:
            log_line("LOG", f"Console output is being saved to: {log_path}")
        else:
            log_line("WARN", "Failed to initialize file logging. Console output will not be saved.")
    try:
        uvicorn.run(app, host=API_HOST, port=API_PORT)
    finally:
        close_log_capture()


__all__ = ["app", "create_app", "main", "registry"]


if __name__ == "__main__":
    main()
