"""De-framing of bridge push callbacks.

The bridge posts its state updates as raw HTTP requests, and whatever reaches the listener may be
a partial request line, headers, a body, or several bodies glued together. Only the brace-delimited
JSON objects in that text carry meaning, so frames are scanned for balanced top-level `{...}` spans
and every span is decoded on its own. All decodable spans are applied in the order they appear.
"""

from __future__ import annotations

import json
import re
import time
from dataclasses import dataclass, field
from typing import Callable

from nuki_gateway.errors import BridgeResult, protocol_error
from nuki_gateway.lock_state import LockReading, parse_lock_payload


USER_AGENT_PREFIX = "NukiBridge_"

_USER_AGENT_RE = re.compile(r"user-agent:\s*" + USER_AGENT_PREFIX + r"([0-9A-Za-z]+)", re.IGNORECASE)


@dataclass(frozen=True)
class CallbackFrame:
    raw: bytes
    received_at: float = field(default_factory=time.time)
    peer: str | None = None

    @property
    def text(self) -> str:
        return self.raw.decode("utf-8", "replace")


FramePredicate = Callable[[CallbackFrame], bool]


def brace_spans(text: str) -> list[str]:
    """Return every balanced top-level `{...}` substring of `text`, left to right.

    Braces inside JSON string literals do not count. An unterminated trailing span is dropped.
    """
    spans: list[str] = []
    depth = 0
    start = -1
    in_string = False
    escaped = False
    for idx, ch in enumerate(text):
        if depth == 0:
            if ch == "{":
                depth = 1
                start = idx
            continue
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                spans.append(text[start : idx + 1])
    return spans


def deframe(text: str) -> str:
    """Concatenation of all brace spans: the canonical decode target of a frame."""
    return "".join(brace_spans(text))


def decode_frame(frame: CallbackFrame) -> BridgeResult[list[LockReading]]:
    readings: list[LockReading] = []
    invalid = 0
    for span in brace_spans(frame.text):
        try:
            payload = json.loads(span)
        except ValueError:
            invalid += 1
            continue
        reading = parse_lock_payload(payload, observed_at=frame.received_at)
        if reading is None:
            invalid += 1
            continue
        readings.append(reading)

    if not readings:
        return protocol_error(
            "Callback frame carries no decodable lock state",
            peer=frame.peer,
            spans_rejected=invalid,
            target=deframe(frame.text)[:512],
        )
    return BridgeResult.success(readings)


def extract_identity(text: str) -> str | None:
    match = _USER_AGENT_RE.search(text)
    return match.group(1) if match else None


def identity_filter(bridge_id: str) -> FramePredicate:
    """Accept only frames whose User-Agent names `bridge_id`. An empty id accepts every frame."""
    wanted = bridge_id.strip()

    def _accept(frame: CallbackFrame) -> bool:
        if not wanted:
            return True
        return extract_identity(frame.text) == wanted

    return _accept
