"""Claude API client wrapper for visual evaluation."""

from __future__ import annotations

import json
import logging
import os
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterable, AsyncIterator, Optional

import anthropic

from .channel import MessageChannel

logger = logging.getLogger(__name__)

# Set by the orchestrator at startup
_debug_dir: Path | None = None


def set_debug_dir(path: Path) -> None:
    """Set the directory AI exchange logs are written to."""
    global _debug_dir
    _debug_dir = Path(path)
    _debug_dir.mkdir(parents=True, exist_ok=True)


def _get_debug_dir() -> Path:
    global _debug_dir
    if _debug_dir is None:
        _debug_dir = Path(".dev") / "logs"
    _debug_dir.mkdir(parents=True, exist_ok=True)
    return _debug_dir


@dataclass
class ResponseChunk:
    type: str  # "text" for streamed text, "stop" once the message is complete
    text: str = ""


def image_message(prompt: str, image_base64: str, media_type: str = "image/png") -> dict:
    """A user message carrying one image followed by the prompt text."""
    return {
        "role": "user",
        "content": [
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": media_type,
                    "data": image_base64,
                },
            },
            {"type": "text", "text": prompt},
        ],
    }


def _describe(messages: list[dict]) -> str:
    """Render messages for the exchange log with image data elided."""
    parts = []
    for message in messages:
        content = message.get("content")
        if isinstance(content, str):
            parts.append(content)
            continue
        for block in content or []:
            if block.get("type") == "text":
                parts.append(block.get("text", ""))
            elif block.get("type") == "image":
                size = len(block.get("source", {}).get("data", ""))
                parts.append(f"[IMAGE ATTACHED: {size} base64 chars]")
    return "\n".join(parts)


class AIClient:
    """Wrapper around the async Anthropic Messages API."""

    def __init__(self, model: str = "claude-sonnet-4-5", max_tokens: int = 4096):
        api_key = os.environ.get("ANTHROPIC_API_KEY")
        if not api_key:
            raise EnvironmentError(
                "ANTHROPIC_API_KEY environment variable is not set. "
                "Please set it before running visual tests."
            )
        self.client = anthropic.AsyncAnthropic(api_key=api_key, timeout=300.0)
        self.model = model
        self.max_tokens = max_tokens
        self._call_count = 0

    @property
    def call_count(self) -> int:
        return self._call_count

    async def start_query(self, messages: AsyncIterable[dict]) -> AsyncIterator[ResponseChunk]:
        """Send every message from ``messages`` and stream the reply.

        Yields a ``"text"`` chunk per streamed text delta and a final
        ``"stop"`` chunk carrying the stop reason.
        """
        conversation = [message async for message in messages]
        self._call_count += 1
        call_number = self._call_count
        logger.info("Calling AI (call #%d, model=%s, max_tokens=%d)...",
                    call_number, self.model, self.max_tokens)

        received: list[str] = []
        call_start = time.time()
        try:
            async with self.client.messages.stream(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=conversation,
            ) as stream:
                async for text in stream.text_stream:
                    received.append(text)
                    yield ResponseChunk(type="text", text=text)
                final = await stream.get_final_message()
        except anthropic.APIError as e:
            logger.error("Claude API error: %s", e)
            self._save_exchange_log(call_number, _describe(conversation), "".join(received), str(e))
            raise

        response_text = "".join(received)
        logger.info("AI response received in %.1fs (%d chars)",
                    time.time() - call_start, len(response_text))
        if final.stop_reason == "max_tokens":
            logger.warning(
                "AI response was truncated at max_tokens (%d). Consider raising ai_max_tokens.",
                self.max_tokens,
            )
        self._save_exchange_log(call_number, _describe(conversation), response_text, None)
        yield ResponseChunk(type="stop", text=final.stop_reason or "")

    async def collect_text(self, messages: AsyncIterable[dict]) -> str:
        parts = []
        async for chunk in self.start_query(messages):
            if chunk.type == "text":
                parts.append(chunk.text)
        return "".join(parts)

    async def complete(self, prompt: str) -> str:
        return await self.collect_text(MessageChannel.of({"role": "user", "content": prompt}))

    async def complete_with_image(self, prompt: str, image_base64: str,
                                  media_type: str = "image/png") -> str:
        return await self.collect_text(
            MessageChannel.of(image_message(prompt, image_base64, media_type))
        )

    # ------------------------------------------------------------------
    # Debug logging
    # ------------------------------------------------------------------

    @staticmethod
    def _save_exchange_log(call_number: int, prompt: str, response_text: str,
                           error: str | None) -> None:
        """Save the full AI exchange (prompt + response) to a log file."""
        try:
            debug_dir = _get_debug_dir()
            ts = time.strftime("%Y%m%d_%H%M%S")
            log_file = debug_dir / f"ai_call_{ts}_{call_number:03d}.log"

            with open(log_file, "w", encoding="utf-8") as f:
                f.write(f"=== AI CALL #{call_number} at {time.strftime('%Y-%m-%d %H:%M:%S')} ===\n\n")
                f.write(f"=== PROMPT ({len(prompt)} chars) ===\n")
                f.write(prompt)
                f.write(f"\n\n=== RESPONSE ({len(response_text)} chars) ===\n")
                f.write(response_text if response_text else "(empty)")
                if error:
                    f.write(f"\n\n=== ERROR ===\n{error}\n")

            logger.debug("AI exchange logged to %s", log_file)
        except Exception as log_err:
            logger.debug("Failed to save AI exchange log: %s", log_err)


# ----------------------------------------------------------------------
# JSON extraction with LLM quirk handling
# ----------------------------------------------------------------------

_FENCE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?```", re.DOTALL)
_TRAILING_COMMA = re.compile(r",\s*([}\]])")


def extract_json_object(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` in ``text``, ignoring braces in strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for pos in range(start, len(text)):
            ch = text[pos]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:pos + 1]
        start = text.find("{", start + 1)
    return None


def _loads_object(candidate: str) -> Optional[dict[str, Any]]:
    for attempt in (candidate, _TRAILING_COMMA.sub(r"\1", candidate)):
        try:
            value = json.loads(attempt, strict=False)
        except json.JSONDecodeError:
            continue
        if isinstance(value, dict):
            return value
    return None


def parse_json_response(text: str, call_number: int = 0) -> dict[str, Any]:
    """Parse a JSON object out of an AI reply that may carry prose or fences."""
    candidates = []
    fenced = _FENCE.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())
    candidates.append(text.strip())

    for candidate in candidates:
        parsed = _loads_object(candidate)
        if parsed is not None:
            return parsed
        extracted = extract_json_object(candidate)
        if extracted is not None:
            parsed = _loads_object(extracted)
            if parsed is not None:
                return parsed

    error = "No JSON object found in response"
    logger.error("Failed to parse AI response as JSON: %s", error)
    _save_parse_failure(call_number, text, error)
    raise ValueError(f"AI returned invalid JSON: {error}")


def _save_parse_failure(call_number: int, raw_response: str, error: str) -> None:
    try:
        debug_dir = _get_debug_dir()
        ts = time.strftime("%Y%m%d_%H%M%S")
        fail_file = debug_dir / f"parse_failure_{ts}_{call_number:03d}.log"
        with open(fail_file, "w", encoding="utf-8") as f:
            f.write(f"=== JSON PARSE FAILURE (call #{call_number}) ===\n\n")
            f.write(f"Error: {error}\n\n")
            f.write(f"=== FULL RAW RESPONSE ({len(raw_response)} chars) ===\n")
            f.write(raw_response)
        logger.error("JSON parse failure details saved to %s", fail_file)
    except Exception as log_err:
        logger.error("Failed to save parse failure log: %s", log_err)
        logger.error("Raw response (first 2000 chars):\n%s", raw_response[:2000])
