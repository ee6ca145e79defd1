"""
Tool Registry Module

Declares the locator tools offered to agents (name, description and JSON input
schema) and dispatches invocations with start/end/error logging.
"""
from __future__ import annotations

import json
import time
from typing import Any, Awaitable, Callable, Dict, List

from logging_utils import log_line

ToolHandler = Callable[[Dict[str, Any]], Awaitable[Any]]

TOOL_DEFINITIONS: List[Dict[str, Any]] = [
    {
        "name": "generate_locators",
        "description": "Generate locators for every element on the current screen. Each element is returned with its text, content description, resource id and a map of locator strategies (id, accessibility id, platform selector, xpath) ordered from most to least reliable.",
        "input_schema": {
            "type": "object",
            "properties": {
                "interactableOnly": {
                    "type": "boolean",
                    "description": "If true (default), skip elements that have no text, no accessibility label, no id and are not clickable."
                }
            }
        }
    },
    {
        "name": "check_locators_from_file",
        "description": "Check locators from a JSON file against the current screen and provide up to 5 alternate locators for each one that is not found.",
        "input_schema": {
            "type": "object",
            "properties": {
                "locatorFilePath": {
                    "type": "string",
                    "description": "Path to the JSON file containing an array of locator entries (pageName, pageElementName, LocatorStrategy, Locators, fieldName, remarks, AutoHeal)."
                }
            },
            "required": ["locatorFilePath"]
        }
    },
]

SENSITIVE_KEYS = (
    "password",
    "token",
    "accesstoken",
    "authorization",
    "apikey",
    "secret",
    "clientsecret",
)
MAX_LOGGED_STRING = 2000


def redact_args(value: Any, key: str = "") -> Any:
    """Copy of tool arguments that is safe to print."""
    if key and any(sensitive in key.lower() for sensitive in SENSITIVE_KEYS):
        return "[REDACTED]"
    if isinstance(value, dict):
        return {k: redact_args(v, str(k)) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [redact_args(item) for item in value]
    if isinstance(value, (bytes, bytearray)):
        return f"[buffer:{len(value)}]"
    if isinstance(value, str) and len(value) > MAX_LOGGED_STRING:
        return f"[string:{len(value)}]"
    return value


class ToolRegistry:
    def __init__(self) -> None:
        self._handlers: Dict[str, ToolHandler] = {}

    def register(self, name: str) -> Callable[[ToolHandler], ToolHandler]:
        def decorator(handler: ToolHandler) -> ToolHandler:
            self._handlers[name] = handler
            return handler
        return decorator

    def names(self) -> List[str]:
        return list(self._handlers)

    def definitions(self) -> List[Dict[str, Any]]:
        return [definition for definition in TOOL_DEFINITIONS if definition["name"] in self._handlers]

    async def run(self, name: str, args: Dict[str, Any]) -> Any:
        if name not in self._handlers:
            raise KeyError(f"Unknown tool: {name}")
        start = time.monotonic()
        log_line("TOOL START", f"{name} {json.dumps(redact_args(args or {}), default=str)}")
        try:
            result = await self._handlers[name](args or {})
        except Exception as err:
            duration = int((time.monotonic() - start) * 1000)
            log_line("TOOL ERROR", f"{name} ({duration}ms): {err}")
            raise
        duration = int((time.monotonic() - start) * 1000)
        log_line("TOOL END", f"{name} ({duration}ms)")
        return result
