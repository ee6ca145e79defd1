"""
Page Model Module

Parses the XML page source returned by Appium (UiAutomator2 or XCUITest) into a
flat, document-ordered list of normalized element records.
"""
from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional

Platform = Literal["android", "ios"]

IOS_AUTOMATION_NAMES = ("xcuitest", "ios", "xcui")
IOS_ROOT_TAGS = ("AppiumAUT",)
ANDROID_ROOT_TAGS = ("hierarchy",)

# XCUITest does not report "clickable"; these element types are treated as tappable.
IOS_INTERACTIVE_TYPES = (
    "xcuielementtypebutton",
    "xcuielementtypecell",
    "xcuielementtypelink",
    "xcuielementtypeswitch",
    "xcuielementtypetextfield",
    "xcuielementtypesecuretextfield",
    "xcuielementtypesearchfield",
    "xcuielementtypetextview",
    "xcuielementtypeslider",
    "xcuielementtypetab",
    "xcuielementtypemenuitem",
    "xcuielementtypesegmentedcontrol",
    "xcuielementtypekey",
    "xcuielementtypepickerwheel",
)

_FRAGMENT_RADIUS = 40


class ParseError(Exception):
    """Raised when a page source cannot be parsed into elements."""

    def __init__(self, message: str, fragment: str = ""):
        super().__init__(f"{message} (near: {fragment!r})" if fragment else message)
        self.fragment = fragment


@dataclass(frozen=True)
class Bounds:
    x1: int
    y1: int
    x2: int
    y2: int

    @property
    def width(self) -> int:
        return max(0, self.x2 - self.x1)

    @property
    def height(self) -> int:
        return max(0, self.y2 - self.y1)

    def to_dict(self) -> Dict[str, int]:
        return {
            "x1": self.x1,
            "y1": self.y1,
            "x2": self.x2,
            "y2": self.y2,
            "width": self.width,
            "height": self.height,
        }


@dataclass(frozen=True)
class ElementNode:
    """One UI element of one parsed page source. Never mutated after parsing."""

    tag_name: str
    text: str
    content_desc: str
    resource_id: str
    clickable: bool
    enabled: bool
    index: int
    xml_tag: str
    path: str
    depth: int
    bounds: Optional[Bounds] = None

    @property
    def is_identifiable(self) -> bool:
        """True when the element can be offered as a primary locator target."""
        return (
            has_value(self.text)
            or has_value(self.content_desc)
            or has_value(self.resource_id)
            or self.clickable
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tagName": self.tag_name,
            "text": self.text,
            "contentDesc": self.content_desc,
            "resourceId": self.resource_id,
            "clickable": self.clickable,
            "enabled": self.enabled,
            "index": self.index,
            "bounds": self.bounds.to_dict() if self.bounds else None,
        }


def has_value(value: Optional[str]) -> bool:
    """True when an attribute carries something other than whitespace."""
    return bool(value and value.strip())


def _to_bool(value) -> bool:
    if value is None:
        return False
    return str(value).strip().lower() in ("true", "1", "yes")


def _to_int(value) -> Optional[int]:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _parse_android_bounds(bounds: str) -> Optional[Bounds]:
    if not bounds:
        return None
    match = re.match(r"\[(-?\d+),(-?\d+)\]\[(-?\d+),(-?\d+)\]", bounds)
    if not match:
        return None
    x1, y1, x2, y2 = map(int, match.groups())
    return Bounds(x1, y1, x2, y2)


def _parse_ios_bounds(elem: ET.Element) -> Optional[Bounds]:
    x, y = _to_int(elem.get("x")), _to_int(elem.get("y"))
    width, height = _to_int(elem.get("width")), _to_int(elem.get("height"))
    if None in (x, y, width, height):
        return None
    return Bounds(x, y, x + width, y + height)


def normalize_platform(value: str) -> Platform:
    lowered = (value or "").strip().lower()
    if lowered in ("android", "ios"):
        return lowered  # type: ignore[return-value]
    raise ValueError(f"Unsupported platform: {value!r}")


def detect_platform(automation_name: Optional[str], page_source: Optional[str] = None) -> Platform:
    """
    Pick Android or iOS rules from the session's automation name.

    An empty or unrecognised automation name falls back to sniffing the
    page-source root element.
    """
    name = (automation_name or "").strip().lower()
    if any(marker in name for marker in IOS_AUTOMATION_NAMES):
        return "ios"
    if name:
        return "android"
    head = (page_source or "")[:2048]
    if any(f"<{tag}" in head for tag in IOS_ROOT_TAGS) or "<XCUIElementType" in head:
        return "ios"
    return "android"


def _fragment_at(raw: str, line: int, column: int) -> str:
    lines = raw.splitlines()
    if not lines or line < 1 or line > len(lines):
        return raw[: _FRAGMENT_RADIUS * 2]
    text = lines[line - 1]
    start = max(0, column - _FRAGMENT_RADIUS)
    return text[start: column + _FRAGMENT_RADIUS]


def _normalize_android(elem: ET.Element) -> Dict[str, Any]:
    return {
        "tag_name": elem.get("class") or elem.tag,
        "text": elem.get("text") or "",
        "content_desc": elem.get("content-desc") or "",
        "resource_id": elem.get("resource-id") or "",
        "clickable": _to_bool(elem.get("clickable")),
        "enabled": not elem.get("enabled") or _to_bool(elem.get("enabled")),
        "bounds": _parse_android_bounds(elem.get("bounds", "")),
    }


def _normalize_ios(elem: ET.Element) -> Dict[str, Any]:
    type_name = elem.get("type") or elem.tag
    label = elem.get("label") or ""
    value = elem.get("value") or ""
    return {
        "tag_name": type_name,
        "text": value if has_value(value) else label,
        "content_desc": label,
        "resource_id": elem.get("name") or "",
        "clickable": type_name.lower() in IOS_INTERACTIVE_TYPES,
        "enabled": not elem.get("enabled") or _to_bool(elem.get("enabled")),
        "bounds": _parse_ios_bounds(elem),
    }


def parse_page_source(raw_page_source: str, platform: Platform) -> List[ElementNode]:
    """
    Parse a page source into document-ordered element records.

    Args:
        raw_page_source: XML returned by the driver's page-source call.
        platform: "android" or "ios"; selects the attribute naming rules.

    Returns:
        Every element of the tree, parents before children.

    Raises:
        ParseError: If the source is empty or not well-formed XML.
    """
    if raw_page_source is None or not raw_page_source.strip():
        raise ParseError("Empty page source")

    try:
        root = ET.fromstring(raw_page_source)
    except ET.ParseError as parse_error:
        line, column = getattr(parse_error, "position", (0, 0))
        raise ParseError(
            f"Malformed page source: {parse_error}",
            fragment=_fragment_at(raw_page_source, line, column),
        ) from parse_error

    normalize = _normalize_ios if normalize_platform(platform) == "ios" else _normalize_android
    nodes: List[ElementNode] = []

    def _walk(elem: ET.Element, path: str, index: int, depth: int) -> None:
        nodes.append(ElementNode(index=index, xml_tag=elem.tag, path=path, depth=depth, **normalize(elem)))
        tag_positions: Dict[str, int] = {}
        for position, child in enumerate(list(elem)):
            tag_positions[child.tag] = tag_positions.get(child.tag, 0) + 1
            _walk(child, f"{path}/{child.tag}[{tag_positions[child.tag]}]", position, depth + 1)

    _walk(root, f"/{root.tag}", 0, 0)
    return nodes
