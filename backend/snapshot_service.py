"""
Snapshot Service Module

Captures the current screen from a session and turns it into an immutable
"element universe": every parsed element paired with its locator candidates.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from appium_session import AppiumSession, require_session
from locator_synthesizer import pick_best_locator, synthesize_locators
from logging_utils import log_line
from page_model import ElementNode, Platform, detect_platform, parse_page_source


@dataclass(frozen=True)
class ElementWithLocators:
    node: ElementNode
    locators: Dict[str, str]

    def to_dict(self, platform: Platform) -> Dict[str, Any]:
        strategy, selector = pick_best_locator(self.locators, platform)
        payload = self.node.to_dict()
        payload["locators"] = dict(self.locators)
        payload["primaryLocator"] = {"strategy": strategy, "selector": selector}
        return payload


@dataclass(frozen=True)
class Snapshot:
    platform: Platform
    elements: Tuple[ElementWithLocators, ...]
    total_elements: int = 0
    interactable_only: bool = True

    def __iter__(self):
        return iter(self.elements)

    def __len__(self) -> int:
        return len(self.elements)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "platform": self.platform,
            "totalElements": self.total_elements,
            "reportedElements": len(self.elements),
            "interactableOnly": self.interactable_only,
            "elements": [element.to_dict(self.platform) for element in self.elements],
        }


def build_snapshot(page_source: str, platform: Platform, interactable_only: bool = True) -> Snapshot:
    """Parse a page source and attach candidates to every (optionally identifiable-only) element."""
    nodes = parse_page_source(page_source, platform)
    elements = tuple(
        ElementWithLocators(node=node, locators=synthesize_locators(node, platform))
        for node in nodes
        if node.is_identifiable or not interactable_only
    )
    return Snapshot(
        platform=platform,
        elements=elements,
        total_elements=len(nodes),
        interactable_only=interactable_only,
    )


def generate_all_element_locators(page_source: str, automation_name: str,
                                  interactable_only: bool = True) -> List[ElementWithLocators]:
    """Offline variant of :func:`capture_snapshot` for an already fetched page source."""
    platform = detect_platform(automation_name, page_source)
    return list(build_snapshot(page_source, platform, interactable_only).elements)


async def capture_snapshot(session: Optional[AppiumSession], interactable_only: bool = True) -> Snapshot:
    """
    Read the live screen once and build a fresh snapshot.

    Raises:
        NoActiveSessionError: If ``session`` is None.
        ParseError: If the page source is empty or malformed.
    """
    session = require_session(session)
    page_source = await session.get_page_source()
    platform = detect_platform(session.automation_name, page_source)
    snapshot = build_snapshot(page_source, platform, interactable_only)
    log_line("SNAPSHOT", f"Captured {len(snapshot)} of {snapshot.total_elements} elements ({platform})")
    return snapshot
