"""
Locator Synthesizer Module

Builds the locator candidates for a single parsed element. Pure functions only:
nothing here talks to a device, so identical element content always produces
byte-identical selectors.
"""
from __future__ import annotations

from typing import Dict, Optional, Tuple

from page_model import ElementNode, Platform, has_value, normalize_platform

STRATEGY_ID = "id"
STRATEGY_ACCESSIBILITY_ID = "accessibility id"
STRATEGY_ANDROID_UIAUTOMATOR = "-android uiautomator"
STRATEGY_IOS_PREDICATE = "-ios predicate string"
STRATEGY_IOS_CLASS_CHAIN = "-ios class chain"
STRATEGY_XPATH = "xpath"

# Most to least reliable.
STRATEGY_PRIORITY: Dict[str, Tuple[str, ...]] = {
    "android": (
        STRATEGY_ID,
        STRATEGY_ACCESSIBILITY_ID,
        STRATEGY_ANDROID_UIAUTOMATOR,
        STRATEGY_XPATH,
    ),
    "ios": (
        STRATEGY_ID,
        STRATEGY_ACCESSIBILITY_ID,
        STRATEGY_IOS_PREDICATE,
        STRATEGY_IOS_CLASS_CHAIN,
        STRATEGY_XPATH,
    ),
}


def escape_xpath_literal(value: str) -> str:
    """Quote a string for use inside an XPath expression."""
    if '"' not in value:
        return f'"{value}"'
    if "'" not in value:
        return f"'{value}'"
    parts = value.split('"')
    return "concat(" + ", '\"', ".join(f'"{part}"' for part in parts) + ")"


def escape_quoted(value: str) -> str:
    """Escape a value for a double-quoted UiSelector or NSPredicate string."""
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _android_attribute(node: ElementNode) -> Optional[Tuple[str, str]]:
    if has_value(node.resource_id):
        return "resource-id", node.resource_id
    if has_value(node.content_desc):
        return "content-desc", node.content_desc
    if has_value(node.text):
        return "text", node.text
    return None


def _ios_attribute(node: ElementNode) -> Optional[Tuple[str, str]]:
    if has_value(node.resource_id):
        return "name", node.resource_id
    if has_value(node.content_desc):
        return "label", node.content_desc
    if has_value(node.text):
        return "value", node.text
    return None


def _attribute_xpath(node: ElementNode, attribute: Optional[Tuple[str, str]]) -> str:
    if not attribute:
        return node.path
    name, value = attribute
    return f"//{node.xml_tag}[@{name}={escape_xpath_literal(value)}]"


def _ui_selector(node: ElementNode) -> Optional[str]:
    if has_value(node.text):
        method, value = "text", node.text
    elif has_value(node.content_desc):
        method, value = "description", node.content_desc
    elif has_value(node.resource_id):
        method, value = "resourceId", node.resource_id
    else:
        return None
    return (
        f'new UiSelector().className("{escape_quoted(node.tag_name)}")'
        f'.{method}("{escape_quoted(value)}")'
    )


def _synthesize_android(node: ElementNode) -> Dict[str, str]:
    locators: Dict[str, str] = {}
    if has_value(node.resource_id):
        locators[STRATEGY_ID] = node.resource_id
    if has_value(node.content_desc):
        locators[STRATEGY_ACCESSIBILITY_ID] = node.content_desc
    ui_selector = _ui_selector(node)
    if ui_selector:
        locators[STRATEGY_ANDROID_UIAUTOMATOR] = ui_selector
    locators[STRATEGY_XPATH] = _attribute_xpath(node, _android_attribute(node))
    return locators


def _synthesize_ios(node: ElementNode) -> Dict[str, str]:
    locators: Dict[str, str] = {}
    if has_value(node.resource_id):
        locators[STRATEGY_ID] = node.resource_id
        # XCUITest resolves "accessibility id" against the name attribute.
        locators[STRATEGY_ACCESSIBILITY_ID] = node.resource_id
    attribute = _ios_attribute(node)
    if attribute:
        name, value = attribute
        condition = f'{name} == "{escape_quoted(value)}"'
        locators[STRATEGY_IOS_PREDICATE] = f'type == "{escape_quoted(node.tag_name)}" AND {condition}'
        locators[STRATEGY_IOS_CLASS_CHAIN] = f"**/{node.tag_name}[`{condition}`]"
    locators[STRATEGY_XPATH] = _attribute_xpath(node, attribute)
    return locators


def synthesize_locators(node: ElementNode, platform: Platform) -> Dict[str, str]:
    """
    Return the strategy -> selector map for one element, in priority order.

    A strategy appears only when its backing attribute is non-empty; the
    ``xpath`` entry is always present, falling back to the element's
    structural path when no attribute discriminates it.
    """
    if normalize_platform(platform) == "ios":
        return _synthesize_ios(node)
    return _synthesize_android(node)


def pick_best_locator(locators: Dict[str, str], platform: Platform) -> Tuple[str, str]:
    """Return the highest-priority (strategy, selector) pair of a candidate map."""
    if not locators:
        raise ValueError("No usable locators generated for target element")
    for strategy in STRATEGY_PRIORITY[normalize_platform(platform)]:
        if locators.get(strategy):
            return strategy, locators[strategy]
    return next(iter(locators.items()))
