"""
Appium Session Module

The session collaborator used by the locator engine, plus the process-wide
store holding the one active session. The engine never reads the store
itself; the tool layer resolves the session and passes it in.
"""
from __future__ import annotations

import asyncio
import functools
import os
from typing import Any, Dict, Optional

import requests

from logging_utils import log_line

# Use 127.0.0.1 instead of localhost for better Windows compatibility
MCP_SERVER_URL = os.getenv("MCP_SERVER_URL", "http://127.0.0.1:8080")
MCP_REQUEST_TIMEOUT = float(os.getenv("MCP_REQUEST_TIMEOUT", "30"))
# How long the bridge waits for an element before reporting it missing.
ELEMENT_WAIT_TIMEOUT_MS = int(os.getenv("ELEMENT_WAIT_TIMEOUT_MS", "5000"))

DEFAULT_CAPABILITIES = {
    "platformName": "Android",
    "appium:automationName": "UiAutomator2",
    "appium:noReset": True,
}


class NoActiveSessionError(Exception):
    """Raised when an operation needs a driver session and none is attached."""


class ResolutionFailure(Exception):
    """Raised by a session when a locator does not resolve on the current screen."""

    def __init__(self, strategy: str, selector: str, reason: str = ""):
        message = f"No element found using {strategy}={selector!r}"
        super().__init__(f"{message}: {reason}" if reason else message)
        self.strategy = strategy
        self.selector = selector
        self.reason = reason


class SessionRequestError(RuntimeError):
    """Raised when the Appium bridge fails a request that has no per-locator fallback."""


class AppiumSession:
    """
    Contract of a driver session as seen by the locator engine.

    ``caps`` carries at least ``automationName``; the two coroutines are the
    only I/O the engine performs.
    """

    caps: Dict[str, Any]

    async def get_page_source(self) -> str:
        raise NotImplementedError

    async def find_element(self, strategy: str, selector: str) -> Any:
        raise NotImplementedError

    @property
    def automation_name(self) -> str:
        caps = getattr(self, "caps", None) or {}
        return str(caps.get("automationName") or caps.get("appium:automationName") or "")


def _is_session_crashed_error(error_msg: str) -> bool:
    if not error_msg:
        return False
    error_lower = error_msg.lower()
    crash_indicators = (
        "instrumentation process is not running",
        "cannot be proxied to uiautomator2",
        "probably crashed",
    )
    return any(indicator in error_lower for indicator in crash_indicators)


class HttpAppiumSession(AppiumSession):
    """Session backed by the Appium MCP HTTP bridge (``POST /tools/run``)."""

    def __init__(self, session_id: Optional[str] = None, caps: Optional[Dict[str, Any]] = None,
                 server_url: str = MCP_SERVER_URL, timeout: float = MCP_REQUEST_TIMEOUT,
                 wait_timeout_ms: int = ELEMENT_WAIT_TIMEOUT_MS) -> None:
        self.session_id = session_id
        self.caps = dict(caps or {})
        self.server_url = server_url.rstrip("/")
        self.timeout = timeout
        self.wait_timeout_ms = wait_timeout_ms

    @classmethod
    def create(cls, capabilities: Optional[Dict[str, Any]] = None,
               server_url: str = MCP_SERVER_URL) -> "HttpAppiumSession":
        """Start a driver session on the bridge. Capabilities override the Android defaults."""
        payload = dict(DEFAULT_CAPABILITIES)
        if capabilities:
            payload.update(capabilities)
        log_line("SESSION", f"Initializing Appium session at {server_url}")
        try:
            response = requests.post(f"{server_url.rstrip('/')}/tools/initialize-appium",
                                     json=payload, timeout=MCP_REQUEST_TIMEOUT)
            response.raise_for_status()
            result = response.json()
        except (requests.RequestException, ValueError) as e:
            raise SessionRequestError(f"Error initializing Appium session: {e}") from e
        if not isinstance(result, dict):
            raise SessionRequestError(f"Unexpected response from server: {str(result)[:200]}")
        if not result.get("success"):
            raise SessionRequestError(f"Failed to initialize session: {result.get('error', 'Unknown error')}")

        caps = {key.split(":", 1)[-1]: value for key, value in payload.items()}
        caps.update(result.get("capabilities") or {})
        log_line("SESSION", f"Appium session initialized: {result.get('sessionId')}")
        return cls(session_id=result.get("sessionId"), caps=caps, server_url=server_url)

    def _run_tool(self, tool: str, args: Dict[str, Any]) -> Dict[str, Any]:
        payload = {"tool": tool, "args": args}
        if self.session_id:
            payload["sessionId"] = self.session_id
        response = requests.post(f"{self.server_url}/tools/run", json=payload, timeout=self.timeout)
        try:
            result = response.json()
        except ValueError:
            return {"success": False, "error": f"Invalid response from server: {response.text[:200]}"}
        if not isinstance(result, dict):
            return {"success": False, "error": f"Unexpected response from server: {str(result)[:200]}"}
        if response.status_code >= 400 and result.get("success") is not False:
            return {"success": False, "error": result.get("error", f"HTTP {response.status_code}")}
        return result

    async def _call(self, tool: str, args: Dict[str, Any]) -> Dict[str, Any]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(self._run_tool, tool, args))

    async def get_page_source(self) -> str:
        try:
            result = await self._call("get_page_source", {})
        except requests.RequestException as e:
            raise SessionRequestError(f"Failed to get page source: {e}") from e
        if result.get("success") is False:
            error_msg = result.get("error", "Unknown error")
            if _is_session_crashed_error(error_msg):
                error_msg = f"Session crashed - {error_msg}"
            raise SessionRequestError(f"Failed to get page source: {error_msg}")
        return result.get("value") or result.get("xml") or ""

    async def find_element(self, strategy: str, selector: str) -> Any:
        args = {"strategy": strategy, "value": selector, "timeoutMs": self.wait_timeout_ms}
        try:
            result = await self._call("wait_for_element", args)
        except requests.RequestException as e:
            raise ResolutionFailure(strategy, selector, str(e)) from e
        if result.get("success") is False:
            raise ResolutionFailure(strategy, selector, result.get("error", "Unknown error"))
        return result.get("element") or result.get("value") or result

    def close(self) -> None:
        try:
            requests.post(f"{self.server_url}/tools/run",
                          json={"tool": "delete_session", "args": {}, "sessionId": self.session_id},
                          timeout=self.timeout)
        except requests.RequestException as e:
            log_line("WARN", f"Failed to delete session {self.session_id}: {e}")


_ACTIVE_SESSION: Optional[AppiumSession] = None


def set_active_session(session: AppiumSession) -> None:
    global _ACTIVE_SESSION
    _ACTIVE_SESSION = session


def get_active_session() -> Optional[AppiumSession]:
    return _ACTIVE_SESSION


def clear_active_session() -> Optional[AppiumSession]:
    """Detach the active session and return it (or None if nothing was attached)."""
    global _ACTIVE_SESSION
    session, _ACTIVE_SESSION = _ACTIVE_SESSION, None
    return session


def require_session(session: Optional[AppiumSession]) -> AppiumSession:
    if session is None:
        raise NoActiveSessionError("No active driver session. Please create a session first.")
    return session
