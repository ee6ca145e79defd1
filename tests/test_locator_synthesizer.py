import pytest

from locator_synthesizer import (
    STRATEGY_PRIORITY,
    escape_xpath_literal,
    pick_best_locator,
    synthesize_locators,
)
from page_model import ElementNode, parse_page_source


def _node(**overrides) -> ElementNode:
    values = dict(
        tag_name="android.widget.Button",
        text="",
        content_desc="",
        resource_id="",
        clickable=True,
        enabled=True,
        index=0,
        xml_tag="android.widget.Button",
        path="/hierarchy/android.widget.Button[1]",
        depth=1,
    )
    values.update(overrides)
    return ElementNode(**values)


def test_android_candidates_follow_priority_order(android_source: str) -> None:
    submit = parse_page_source(android_source, "android")[5]

    locators = synthesize_locators(submit, "android")

    assert list(locators) == ["id", "-android uiautomator", "xpath"]
    assert locators["id"] == "com.app:id/submit"
    assert locators["-android uiautomator"] == 'new UiSelector().className("android.widget.Button").text("Submit")'
    assert locators["xpath"] == '//android.widget.Button[@resource-id="com.app:id/submit"]'


def test_android_content_desc_becomes_accessibility_id(android_source: str) -> None:
    cancel = parse_page_source(android_source, "android")[6]

    locators = synthesize_locators(cancel, "android")

    assert "id" not in locators
    assert locators["accessibility id"] == "Cancel order"
    assert locators["xpath"] == '//android.widget.Button[@content-desc="Cancel order"]'


def test_structural_xpath_when_nothing_discriminates(android_source: str) -> None:
    view = parse_page_source(android_source, "android")[7]

    locators = synthesize_locators(view, "android")

    assert locators == {"xpath": view.path}


def test_ios_candidates(ios_source: str) -> None:
    button, static_text = parse_page_source(ios_source, "ios")[3:5]

    button_locators = synthesize_locators(button, "ios")
    text_locators = synthesize_locators(static_text, "ios")

    assert list(button_locators) == list(STRATEGY_PRIORITY["ios"])
    assert button_locators["id"] == "checkout_button"
    assert button_locators["accessibility id"] == "checkout_button"
    assert button_locators["-ios predicate string"] == 'type == "XCUIElementTypeButton" AND name == "checkout_button"'
    assert button_locators["-ios class chain"] == '**/XCUIElementTypeButton[`name == "checkout_button"`]'
    assert button_locators["xpath"] == '//XCUIElementTypeButton[@name="checkout_button"]'
    assert "id" not in text_locators
    assert text_locators["-ios predicate string"] == 'type == "XCUIElementTypeStaticText" AND label == "Total: $5"'


def test_every_node_has_a_candidate(android_source: str, ios_source: str) -> None:
    for source, platform in ((android_source, "android"), (ios_source, "ios")):
        for node in parse_page_source(source, platform):
            assert synthesize_locators(node, platform)


def test_id_candidate_depends_only_on_resource_id() -> None:
    first = _node(resource_id="com.app:id/go", text="Go")
    second = _node(resource_id="com.app:id/go", text="Start", content_desc="start", index=4)

    assert synthesize_locators(first, "android")["id"] == "com.app:id/go"
    assert synthesize_locators(second, "android")["id"] == "com.app:id/go"


def test_synthesis_is_idempotent() -> None:
    node = _node(text='Say "hi"', content_desc="It's me")

    assert synthesize_locators(node, "android") == synthesize_locators(node, "android")
    assert list(synthesize_locators(node, "android")) == list(synthesize_locators(node, "android"))


def test_quotes_are_escaped() -> None:
    node = _node(text='Say "hi"')

    locators = synthesize_locators(node, "android")

    assert locators["-android uiautomator"].endswith('.text("Say \\"hi\\"")')
    assert locators["xpath"] == "//android.widget.Button[@text='Say \"hi\"']"


@pytest.mark.parametrize(
    "value, expected",
    [
        ("plain", '"plain"'),
        ('with "double"', "'with \"double\"'"),
        ("both \" and '", "concat(\"both \", '\"', \" and '\")"),
    ],
)
def test_escape_xpath_literal(value: str, expected: str) -> None:
    assert escape_xpath_literal(value) == expected


def test_pick_best_locator_uses_platform_priority() -> None:
    locators = {"xpath": "//a", "accessibility id": "A"}

    assert pick_best_locator(locators, "android") == ("accessibility id", "A")
    assert pick_best_locator({"xpath": "//a"}, "ios") == ("xpath", "//a")


def test_padded_values_are_used_verbatim() -> None:
    locators = synthesize_locators(_node(text="Pay now ", content_desc=" Pay now"), "android")

    assert locators["accessibility id"] == " Pay now"
    assert locators["-android uiautomator"] == (
        'new UiSelector().className("android.widget.Button").text("Pay now ")'
    )
    assert locators["xpath"] == '//android.widget.Button[@content-desc=" Pay now"]'


def test_whitespace_only_values_produce_no_strategy() -> None:
    locators = synthesize_locators(_node(text="  ", content_desc=" ", resource_id="\t"), "android")

    assert list(locators) == ["xpath"]
    assert locators["xpath"] == "/hierarchy/android.widget.Button[1]"


def test_pick_best_locator_rejects_empty_map() -> None:
    with pytest.raises(ValueError):
        pick_best_locator({}, "android")
