"""Pytest configuration and shared fixtures."""

import json
import time
from pathlib import Path
from typing import Any, Optional

import pytest

from visualjudge.ai.client import AIClient, ResponseChunk, set_debug_dir
from visualjudge.models.evaluation import EvaluationResult, Observations
from visualjudge.models.scenario import Dimensions, FrameInfo, ScreenshotMetadata

# Smallest byte string that looks like a PNG to anything that only sniffs headers
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def write_png(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(PNG_BYTES)
    return path


# ============================================================================
# Model Fixtures
# ============================================================================


@pytest.fixture
def make_metadata():
    """Build ScreenshotMetadata records with sensible defaults."""

    def _make(component: str = "banner", scenario: str = "Default View",
              file_path: str = "/tmp/banner-default-view.png",
              animation: Optional[FrameInfo] = None, **kwargs: Any) -> ScreenshotMetadata:
        return ScreenshotMetadata(
            component_name=component,
            scenario_name=scenario,
            description=kwargs.get("description", "Banner with title"),
            expectation=kwargs.get("expectation", "Shows the title in bold"),
            params=kwargs.get("params", {}),
            file_path=file_path,
            timestamp=kwargs.get("timestamp", time.time()),
            dimensions=Dimensions(width=900, height=600),
            animation=animation,
        )

    return _make


@pytest.fixture
def make_result():
    """Build EvaluationResult records."""

    def _make(component: str = "banner", scenario: str = "Default View",
              passed: bool = True, confidence: float = 0.9, **kwargs: Any) -> EvaluationResult:
        return EvaluationResult(
            component_name=component,
            scenario_name=scenario,
            file_path=kwargs.get("file_path", f"/tmp/{component}-{scenario}.png"),
            passed=passed,
            confidence=confidence,
            reasoning=kwargs.get("reasoning", "Looks right"),
            observations=kwargs.get("observations", Observations()),
            suggestions=kwargs.get("suggestions", []),
            timestamp=kwargs.get("timestamp", 1_700_000_000.0),
        )

    return _make


# ============================================================================
# AI Fixtures
# ============================================================================


class FakeAIClient(AIClient):
    """AIClient with a canned transport: replies to image prompts and summary prompts."""

    def __init__(self, evaluation_reply: str, summary_reply: str = "{}",
                 error: Optional[Exception] = None):
        self.evaluation_reply = evaluation_reply
        self.summary_reply = summary_reply
        self.error = error
        self._call_count = 0
        self.messages: list[dict] = []

    async def start_query(self, messages):
        async for message in messages:
            self.messages.append(message)
        self._call_count += 1
        if self.error is not None:
            raise self.error
        content = self.messages[-1]["content"]
        reply = self.summary_reply if isinstance(content, str) else self.evaluation_reply
        # Split to exercise chunk joining
        middle = len(reply) // 2
        yield ResponseChunk(type="text", text=reply[:middle])
        yield ResponseChunk(type="text", text=reply[middle:])
        yield ResponseChunk(type="stop", text="end_turn")

    def prompt_text(self, index: int = -1) -> str:
        content = self.messages[index]["content"]
        if isinstance(content, str):
            return content
        return "".join(block.get("text", "") for block in content if block["type"] == "text")


PASSING_REPLY = json.dumps({
    "passed": True,
    "confidence": 0.92,
    "reasoning": "Title is bold and centred",
    "observations": {
        "elements_found": ["title"],
        "text_content": ["Welcome"],
        "layout_description": "Centred banner",
        "color_scheme": ["#ffffff"],
    },
    "suggestions": [],
})

FAILING_REPLY = json.dumps({
    "passed": False,
    "confidence": 0.8,
    "reasoning": "Title is missing",
    "observations": {},
    "suggestions": ["Render the title"],
})


@pytest.fixture
def fake_ai():
    """Factory for FakeAIClient instances."""

    def _make(passed: bool = True, evaluation_reply: Optional[str] = None,
              summary_reply: str = "{}", error: Optional[Exception] = None) -> FakeAIClient:
        if evaluation_reply is None:
            evaluation_reply = PASSING_REPLY if passed else FAILING_REPLY
        return FakeAIClient(evaluation_reply, summary_reply, error)

    return _make


@pytest.fixture(autouse=True)
def debug_dir(tmp_path: Path) -> Path:
    """Keep AI exchange logs inside the test's temporary directory."""
    path = tmp_path / "ai-debug"
    set_debug_dir(path)
    return path
