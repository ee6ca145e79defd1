from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable, List, Tuple

import pytest

from appium_session import AppiumSession, ResolutionFailure

ANDROID_PAGE_SOURCE = """<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<hierarchy index="0" class="hierarchy" rotation="0" width="1080" height="2340">
  <android.widget.FrameLayout index="0" package="com.app" class="android.widget.FrameLayout" text="" content-desc="" resource-id="" clickable="false" enabled="true" bounds="[0,0][1080,2340]">
    <android.widget.LinearLayout index="0" package="com.app" class="android.widget.LinearLayout" text="" content-desc="" resource-id="com.app:id/form" clickable="false" enabled="true" bounds="[0,100][1080,2000]">
      <android.widget.TextView index="0" package="com.app" class="android.widget.TextView" text="Welcome back" content-desc="" resource-id="" clickable="false" enabled="true" bounds="[40,120][1040,200]"/>
      <android.widget.EditText index="1" package="com.app" class="android.widget.EditText" text="" content-desc="Email" resource-id="com.app:id/email" clickable="true" enabled="true" bounds="[40,220][1040,320]"/>
      <android.widget.Button index="2" package="com.app" class="android.widget.Button" text="Submit" content-desc="" resource-id="com.app:id/submit" clickable="true" enabled="true" bounds="[40,400][1040,500]"/>
      <android.widget.Button index="3" package="com.app" class="android.widget.Button" text="Cancel" content-desc="Cancel order" resource-id="" clickable="true" enabled="false" bounds="[40,520][1040,620]"/>
      <android.view.View index="4" package="com.app" class="android.view.View" text="" content-desc="" resource-id="" clickable="false" enabled="true" bounds="[0,0][0,0]"/>
    </android.widget.LinearLayout>
  </android.widget.FrameLayout>
</hierarchy>
"""

IOS_PAGE_SOURCE = """<?xml version="1.0" encoding="UTF-8"?>
<AppiumAUT>
  <XCUIElementTypeApplication type="XCUIElementTypeApplication" name="Shop" label="Shop" enabled="true" visible="true" accessible="false" x="0" y="0" width="390" height="844" index="0">
    <XCUIElementTypeWindow type="XCUIElementTypeWindow" enabled="true" visible="true" accessible="false" x="0" y="0" width="390" height="844" index="0">
      <XCUIElementTypeButton type="XCUIElementTypeButton" name="checkout_button" label="Checkout" enabled="true" visible="true" accessible="true" x="20" y="700" width="350" height="44" index="0"/>
      <XCUIElementTypeStaticText type="XCUIElementTypeStaticText" value="Total: $5" name="" label="Total: $5" enabled="true" visible="true" accessible="true" x="20" y="600" width="350" height="30" index="1"/>
      <XCUIElementTypeOther type="XCUIElementTypeOther" enabled="true" visible="true" accessible="false" x="0" y="0" width="390" height="10" index="2"/>
    </XCUIElementTypeWindow>
  </XCUIElementTypeApplication>
</AppiumAUT>
"""


class FakeSession(AppiumSession):
    """In-memory session: resolves only the configured (strategy, selector) pairs."""

    def __init__(self, page_source: str = ANDROID_PAGE_SOURCE, automation_name: str = "UiAutomator2",
                 resolvable: Iterable[Tuple[str, str]] = ()) -> None:
        self.page_source = page_source
        self.caps = {"automationName": automation_name}
        self.resolvable = set(resolvable)
        self.calls: List[Tuple[str, Any]] = []

    @property
    def page_source_calls(self) -> int:
        return sum(1 for name, _ in self.calls if name == "get_page_source")

    async def get_page_source(self) -> str:
        self.calls.append(("get_page_source", None))
        return self.page_source

    async def find_element(self, strategy: str, selector: str) -> Any:
        self.calls.append(("find_element", (strategy, selector)))
        if (strategy, selector) not in self.resolvable:
            raise ResolutionFailure(strategy, selector, "element could not be located")
        return {"ELEMENT": f"{strategy}:{selector}"}


@pytest.fixture
def android_source() -> str:
    return ANDROID_PAGE_SOURCE


@pytest.fixture
def ios_source() -> str:
    return IOS_PAGE_SOURCE


@pytest.fixture
def make_session():
    return FakeSession


@pytest.fixture
def write_locator_file(tmp_path: Path):
    def _write(data: Any, name: str = "locators.json") -> str:
        path = tmp_path / name
        path.write_text(json.dumps(data), encoding="utf-8")
        return str(path)
    return _write
