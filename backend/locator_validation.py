"""
Locator Validation Module

Checks a recorded locator file against the live screen. Every entry is first
resolved directly; entries that no longer resolve get up to five replacement
candidates picked from a snapshot of the current screen.
"""
from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from appium_session import AppiumSession, ResolutionFailure, require_session
from logging_utils import log_line
from page_model import ElementNode
from snapshot_service import ElementWithLocators, Snapshot, capture_snapshot

MAX_ALTERNATES = 5


class LocatorFileError(Exception):
    """Raised when a locator file is missing, is not JSON, or has the wrong shape."""

    def __init__(self, message: str, path: str = ""):
        super().__init__(message)
        self.path = path


class UserLocatorEntry(BaseModel):
    """One recorded locator as stored in a locator file."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    page_name: str = Field("", alias="pageName")
    page_element_name: str = Field("", alias="pageElementName")
    locator_strategy: str = Field(..., alias="LocatorStrategy", min_length=1)
    locators: str = Field(..., alias="Locators", min_length=1)
    field_name: str = Field("", alias="fieldName")
    remarks: str = ""
    timestamp: str = ""
    auto_heal: bool = Field(False, alias="AutoHeal")

    @field_validator("page_name", "page_element_name", "field_name", "remarks", "timestamp", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else value

    @field_validator("auto_heal", mode="before")
    @classmethod
    def _blank_auto_heal(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return False
        return value.strip().lower() if isinstance(value, str) else value

    @property
    def target_label(self) -> str:
        """Label used for text matching: fieldName, then remarks, then pageElementName."""
        for candidate in (self.field_name, self.remarks, self.page_element_name):
            if candidate and candidate.strip():
                return candidate.strip()
        return ""


_ENTRIES_ADAPTER = TypeAdapter(List[UserLocatorEntry])


def parse_locator_entries(data: Any, path: str = "") -> List[UserLocatorEntry]:
    """Validate an already decoded locator file body; the whole array is checked up front."""
    if not isinstance(data, list):
        raise LocatorFileError("Locator file must contain an array of locator objects", path)
    try:
        return _ENTRIES_ADAPTER.validate_python(data)
    except ValidationError as e:
        error = e.errors()[0]
        location = error.get("loc") or ()
        index = location[0] if location else "?"
        field_name = ".".join(str(part) for part in location[1:]) or "entry"
        raise LocatorFileError(
            f"Invalid locator entry at index {index}: {field_name}: {error.get('msg', 'invalid value')}",
            path,
        ) from e


def load_locator_file(locator_file_path: str) -> List[UserLocatorEntry]:
    """Read and validate a JSON locator file relative to the working directory."""
    path = os.path.abspath(locator_file_path)
    if not os.path.isfile(path):
        raise LocatorFileError(f"Locator file not found: {path}", path)
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, UnicodeDecodeError) as e:
        raise LocatorFileError(f"Unable to read locator file {path}: {e}", path) from e
    except json.JSONDecodeError as e:
        raise LocatorFileError(f"Locator file is not valid JSON: {e}", path) from e
    return parse_locator_entries(data, path)


class TextMatcher:
    """Decides whether an element is a plausible match for a human label."""

    name = "base"

    def matches(self, node: ElementNode, target: str) -> bool:
        raise NotImplementedError


class ContainsTextMatcher(TextMatcher):
    """Case-insensitive containment of the label in text, content-desc or resource id."""

    name = "contains"

    def matches(self, node: ElementNode, target: str) -> bool:
        needle = target.lower()
        if not needle:
            return False
        return any(needle in value.lower() for value in (node.text, node.content_desc, node.resource_id) if value)


class TokenOverlapMatcher(TextMatcher):
    """Every word of the label appears somewhere in the element's identifying text."""

    name = "token_overlap"
    _TOKEN_PATTERN = re.compile(r"[a-z0-9]+")

    def _tokens(self, value: str) -> List[str]:
        return self._TOKEN_PATTERN.findall(value.lower())

    def matches(self, node: ElementNode, target: str) -> bool:
        wanted = set(self._tokens(target))
        if not wanted:
            return False
        available = set()
        for value in (node.text, node.content_desc, node.resource_id):
            available.update(self._tokens(value))
        return wanted <= available


@dataclass(frozen=True)
class AlternateLocator:
    strategy: str
    selector: str
    tag_name: str

    def to_dict(self) -> Dict[str, str]:
        return {"strategy": self.strategy, "selector": self.selector, "tagName": self.tag_name}


def _alternates_for(element: ElementWithLocators, tried_strategy: str) -> List[AlternateLocator]:
    return [
        AlternateLocator(strategy=strategy, selector=selector, tag_name=element.node.tag_name)
        for strategy, selector in element.locators.items()
        if strategy != tried_strategy
    ]


def dedupe_alternates(alternates: Iterable[AlternateLocator]) -> List[AlternateLocator]:
    seen: set[Tuple[str, str]] = set()
    unique: List[AlternateLocator] = []
    for alternate in alternates:
        key = (alternate.strategy, alternate.selector)
        if key not in seen:
            seen.add(key)
            unique.append(alternate)
    return unique


def find_alternate_locators(entry: UserLocatorEntry,
                            elements: Sequence[ElementWithLocators],
                            matcher: Optional[TextMatcher] = None,
                            limit: int = MAX_ALTERNATES) -> List[AlternateLocator]:
    """
    Rank replacement locators for an entry that failed to resolve.

    Elements are visited in document order. For each one, a text match adds its
    candidates first, then an exact reuse of the failed selector adds them
    again; the union is de-duplicated by (strategy, selector) keeping the first
    occurrence, and capped at ``limit``.
    """
    matcher = matcher or ContainsTextMatcher()
    target = entry.target_label
    alternates: List[AlternateLocator] = []

    for element in elements:
        if target and matcher.matches(element.node, target):
            alternates.extend(_alternates_for(element, entry.locator_strategy))
        if entry.locators in element.locators.values():
            alternates.extend(_alternates_for(element, entry.locator_strategy))

    return dedupe_alternates(alternates)[:limit]


@dataclass(frozen=True)
class LocatorCheckResult:
    entry: UserLocatorEntry
    found: bool
    alternates: Tuple[AlternateLocator, ...] = ()
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "pageName": self.entry.page_name,
            "pageElementName": self.entry.page_element_name,
            "primaryStrategy": self.entry.locator_strategy,
            "primaryLocator": self.entry.locators,
            "found": self.found,
            "autoHeal": self.entry.auto_heal,
        }
        if not self.found:
            payload["alternateLocators"] = [alternate.to_dict() for alternate in self.alternates]
            payload["error"] = self.error
        return payload


@dataclass
class ValidationReport:
    results: List[LocatorCheckResult] = field(default_factory=list)

    @property
    def total_checked(self) -> int:
        return len(self.results)

    @property
    def found(self) -> List[LocatorCheckResult]:
        return [result for result in self.results if result.found]

    @property
    def missing(self) -> List[LocatorCheckResult]:
        return [result for result in self.results if not result.found]

    @property
    def message(self) -> str:
        return (
            f"Checked {self.total_checked} locators: "
            f"{len(self.found)} found, {len(self.missing)} missing"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalChecked": self.total_checked,
            "foundCount": len(self.found),
            "missingCount": len(self.missing),
            "foundLocators": [
                {
                    "pageName": result.entry.page_name,
                    "pageElementName": result.entry.page_element_name,
                    "strategy": result.entry.locator_strategy,
                    "selector": result.entry.locators,
                }
                for result in self.found
            ],
            "missingLocators": [
                {
                    "pageName": result.entry.page_name,
                    "pageElementName": result.entry.page_element_name,
                    "primaryStrategy": result.entry.locator_strategy,
                    "primaryLocator": result.entry.locators,
                    "alternateLocators": [alternate.to_dict() for alternate in result.alternates],
                    "error": result.error,
                }
                for result in self.missing
            ],
            "results": [result.to_dict() for result in self.results],
            "message": self.message,
        }


class LocatorHealer:
    """
    Validates locator entries against one session for the duration of one run.

    The snapshot used for alternate matching is captured lazily, on the first
    entry that fails, and shared by the remaining entries of the same run.
    Create a new healer for every run.
    """

    def __init__(self, session: Optional[AppiumSession],
                 matcher: Optional[TextMatcher] = None,
                 max_alternates: int = MAX_ALTERNATES) -> None:
        self.session = require_session(session)
        self.matcher = matcher or ContainsTextMatcher()
        self.max_alternates = max_alternates
        self._snapshot: Optional[Snapshot] = None

    async def snapshot(self) -> Snapshot:
        if self._snapshot is None:
            self._snapshot = await capture_snapshot(self.session, interactable_only=True)
        return self._snapshot

    async def resolve(self, entry: UserLocatorEntry) -> LocatorCheckResult:
        label = entry.page_element_name or entry.locators
        try:
            await self.session.find_element(entry.locator_strategy, entry.locators)
        except ResolutionFailure as failure:
            snapshot = await self.snapshot()
            alternates = find_alternate_locators(entry, snapshot.elements, self.matcher, self.max_alternates)
            log_line("HEAL", f"{label}: not found, {len(alternates)} alternate(s) suggested")
            return LocatorCheckResult(entry=entry, found=False, alternates=tuple(alternates), error=str(failure))
        log_line("CHECK", f"{label}: found with {entry.locator_strategy}")
        return LocatorCheckResult(entry=entry, found=True)

    async def validate(self, entries: Sequence[UserLocatorEntry]) -> ValidationReport:
        report = ValidationReport()
        for entry in entries:
            report.results.append(await self.resolve(entry))
        log_line("CHECK", report.message)
        return report


async def check_locators_from_file(locator_file_path: str,
                                   session: Optional[AppiumSession],
                                   matcher: Optional[TextMatcher] = None) -> ValidationReport:
    """
    Validate every entry of a locator file against the live screen.

    Raises:
        NoActiveSessionError: If ``session`` is None.
        LocatorFileError: If the file is missing or malformed; raised before
            the session is touched.
        ParseError: If the snapshot needed for alternates cannot be parsed.
    """
    session = require_session(session)
    entries = load_locator_file(locator_file_path)
    log_line("CHECK", f"Validating {len(entries)} locator(s) from {locator_file_path}")
    return await LocatorHealer(session, matcher=matcher).validate(entries)
