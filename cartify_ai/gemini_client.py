from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from .errors import GenerationFailed, MissingConfiguration
from .model_request import ModelRequest

logger = logging.getLogger("cartify.gemini")


class GeminiClient:
    """Thin wrapper around the Gemini SDK returning the provider's raw payload."""

    def __init__(self, api_key: str) -> None:
        """Purpose: Configure the Gemini SDK with the service API key.
        Inputs/Outputs: Input is the API key; no return value.
        Side Effects / State: Configures the SDK's process-wide API key.
        Dependencies: Uses google.generativeai.
        Failure Modes: Raises MissingConfiguration if the key is empty.
        If Removed: The pipeline cannot reach the model provider.
        Testing Notes: Construct with "" and expect MissingConfiguration.
        """
        # Fail per request, not at startup, when the key is absent.
        if not api_key:
            raise MissingConfiguration("Missing GEMINI_API_KEY")
        genai.configure(api_key=api_key)

    def generate(self, request: ModelRequest) -> Dict[str, Any]:
        """Purpose: Call generateContent and return the response as a JSON-able dict.
        Inputs/Outputs: Input is a ModelRequest; output is the provider response dict.
        Side Effects / State: One outbound provider call.
        Dependencies: Uses genai.GenerativeModel with the request's system instruction.
        Failure Modes: Provider API errors raise GenerationFailed carrying the provider
            message when present, otherwise the default message.
        If Removed: No answer can be generated.
        Testing Notes: Patch GenerativeModel to raise InvalidArgument("bad") and check
            GenerationFailed.message == "bad".
        """
        model_name = _normalize_model_name(request.model)
        model = genai.GenerativeModel(model_name, system_instruction=request.system_instruction)
        logger.info(
            "gemini generate model=%s turns=%d system=%s",
            model_name,
            len(request.contents),
            bool(request.system_instruction),
        )
        try:
            response = model.generate_content(
                request.contents,
                generation_config=request.generation_config,
            )
        except google_exceptions.GoogleAPIError as exc:
            message: Optional[str] = getattr(exc, "message", None) or str(exc) or None
            logger.warning("gemini generate failed model=%s error=%s", model_name, type(exc).__name__)
            raise GenerationFailed(message) from exc
        return _response_payload(response)


def _response_payload(response: Any) -> Dict[str, Any]:
    """Purpose: Convert an SDK response into the provider's JSON shape.
    Inputs/Outputs: Input is a GenerateContentResponse; output is a dict.
    Side Effects / State: None.
    Dependencies: Uses the SDK's to_dict when available.
    Failure Modes: Older SDK objects without to_dict fall back to {"text": ...}.
    If Removed: Callers would receive SDK objects that cannot be serialized.
    Testing Notes: Pass an object exposing to_dict and verify passthrough.
    """
    to_dict = getattr(response, "to_dict", None)
    if callable(to_dict):
        payload = to_dict()
        if isinstance(payload, dict):
            return payload
        return {"data": payload}
    text: Optional[str] = getattr(response, "text", None)
    return {"text": (text or "").strip()}


def _normalize_model_name(name: Optional[str]) -> str:
    # "models/gemini-x" and "gemini-x" address the same model.
    if not name:
        return ""
    cleaned = name.strip()
    if cleaned.startswith("models/"):
        return cleaned.split("/", 1)[1]
    return cleaned
