from __future__ import annotations

import logging
import math
from typing import Any, List, Optional

from .errors import InvalidInput
from .models import ConversationMessage, NormalizedRequest
from .utils import clamp, is_record

logger = logging.getLogger("cartify.request")

DEFAULT_TEMPERATURE = 0.1
MIN_TEMPERATURE = 0.0
MAX_TEMPERATURE = 2.0

TRUE_STRINGS = {"1", "true", "yes", "y", "on"}
FALSE_STRINGS = {"0", "false", "no", "n", "off"}


def parse_messages(value: Any) -> Optional[List[ConversationMessage]]:
    """Purpose: Convert the raw messages array into typed conversation messages.
    Inputs/Outputs: Input is any JSON value; output is a message list or None when invalid.
    Side Effects / State: None.
    Dependencies: Uses ConversationMessage; accepts the legacy single "imageUrl" field.
    Failure Modes: Returns None if the value is not a list or any entry lacks a
        non-empty string role or content.
    If Removed: Malformed payloads would reach the model request builder.
    Testing Notes: Mix "images" arrays, "imageUrl" strings, and non-string images.
    """
    # Reject the whole payload on the first malformed entry.
    if not isinstance(value, list):
        return None
    messages: List[ConversationMessage] = []
    for entry in value:
        if not is_record(entry):
            return None
        role = entry.get("role") if isinstance(entry.get("role"), str) else ""
        content = entry.get("content") if isinstance(entry.get("content"), str) else ""
        if not role or not content:
            return None

        raw_images = entry.get("images")
        if isinstance(raw_images, list):
            images = tuple(img for img in raw_images if isinstance(img, str))
        elif isinstance(entry.get("imageUrl"), str):
            images = (entry["imageUrl"],)
        else:
            images = ()
        messages.append(ConversationMessage(role=role, text=content, images=images))
    return messages


def normalize_model(value: Any, default_model: str) -> str:
    model = value.strip() if isinstance(value, str) else ""
    return model or default_model


def normalize_temperature(value: Any) -> float:
    """Purpose: Parse and clamp the sampling temperature.
    Inputs/Outputs: Input is any JSON value; output is a float in [0, 2].
    Side Effects / State: None.
    Dependencies: Uses clamp from utils.
    Failure Modes: Unparsable, missing, or non-finite values return 0.1.
    If Removed: Out-of-range temperatures would be forwarded to the provider.
    Testing Notes: Check "0.7", 5, -1, None, "warm".
    """
    # Numbers and numeric strings parse; anything else uses the default.
    if isinstance(value, bool) or value is None:
        return DEFAULT_TEMPERATURE
    try:
        temperature = float(value)
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_TEMPERATURE
    if not math.isfinite(temperature):
        return DEFAULT_TEMPERATURE
    return clamp(temperature, MIN_TEMPERATURE, MAX_TEMPERATURE)


def normalize_boolean(value: Any, fallback: bool) -> bool:
    """Purpose: Coerce a boolean-like toggle into a bool.
    Inputs/Outputs: Inputs are the raw value and a fallback; output is a bool.
    Side Effects / State: None.
    Dependencies: Uses TRUE_STRINGS/FALSE_STRINGS.
    Failure Modes: Unknown values return the fallback.
    If Removed: String toggles like "off" would enable web search.
    Testing Notes: Check "ON", " no ", True, 3, None.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_STRINGS:
            return True
        if lowered in FALSE_STRINGS:
            return False
    return fallback


def normalize_request(body: Any, default_model: str) -> NormalizedRequest:
    """Purpose: Validate the incoming request body into a NormalizedRequest.
    Inputs/Outputs: Input is the decoded JSON body (any shape) and the default model;
        output is a NormalizedRequest.
    Side Effects / State: None.
    Dependencies: Uses parse_messages and the normalize_* helpers.
    Failure Modes: Raises InvalidInput when messages are malformed or empty.
    If Removed: The pipeline has no typed input and cannot build a model request.
    Testing Notes: Send messages [] and expect InvalidInput; omit model and expect default.
    """
    # Non-object bodies behave like an empty body and fail on messages.
    record = body if is_record(body) else {}
    messages = parse_messages(record.get("messages"))
    if not messages:
        raise InvalidInput("Invalid messages")

    normalized = NormalizedRequest(
        messages=messages,
        model=normalize_model(record.get("model"), default_model),
        temperature=normalize_temperature(record.get("temperature")),
        web_search_enabled=normalize_boolean(record.get("web_search"), True),
    )
    logger.debug(
        "request normalized messages=%d model=%s temperature=%s web_search=%s",
        len(normalized.messages),
        normalized.model,
        normalized.temperature,
        normalized.web_search_enabled,
    )
    return normalized


def last_user_query(messages: List[ConversationMessage]) -> str:
    # The newest user-authored turn drives both web and catalog lookups.
    for message in reversed(messages):
        if message.role == "user":
            return message.text.strip()
    return ""
