import pytest

from locator_validation import LocatorFileError, load_locator_file, parse_locator_entries


def test_load_valid_file(write_locator_file) -> None:
    path = write_locator_file([
        {
            "pageName": "Login",
            "pageElementName": "submitBtn",
            "LocatorStrategy": "id",
            "Locators": "com.app:id/submit",
            "fieldName": "Submit",
            "timestamp": "2024-01-01T00:00:00Z",
            "remarks": "primary action",
            "AutoHeal": "true",
            "owner": "ignored",
        },
        {"LocatorStrategy": "xpath", "Locators": "//android.widget.Button", "remarks": None, "AutoHeal": ""},
    ])

    first, second = load_locator_file(path)

    assert first.page_element_name == "submitBtn"
    assert first.locator_strategy == "id"
    assert first.auto_heal is True
    assert second.page_name == ""
    assert second.remarks == ""
    assert second.auto_heal is False


def test_missing_file(tmp_path) -> None:
    with pytest.raises(LocatorFileError, match="not found"):
        load_locator_file(str(tmp_path / "nope.json"))


def test_invalid_json(tmp_path) -> None:
    path = tmp_path / "broken.json"
    path.write_text("[{", encoding="utf-8")

    with pytest.raises(LocatorFileError, match="not valid JSON"):
        load_locator_file(str(path))


def test_whole_array_is_checked_before_use() -> None:
    data = [
        {"LocatorStrategy": "id", "Locators": "com.app:id/ok"},
        {"LocatorStrategy": "id"},
    ]

    with pytest.raises(LocatorFileError, match="index 1"):
        parse_locator_entries(data)


def test_empty_selector_is_rejected() -> None:
    with pytest.raises(LocatorFileError, match="Locators"):
        parse_locator_entries([{"LocatorStrategy": "id", "Locators": ""}])


def test_non_object_item_is_rejected() -> None:
    with pytest.raises(LocatorFileError, match="index 0"):
        parse_locator_entries(["com.app:id/submit"])


def test_empty_array_is_valid() -> None:
    assert parse_locator_entries([]) == []
