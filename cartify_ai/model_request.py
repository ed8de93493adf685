from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .errors import InvalidInput
from .models import Turn

logger = logging.getLogger("cartify.gemini")

DATA_URI_PREFIX = "data:image"
DEFAULT_IMAGE_MIME = "image/jpeg"
MIME_RE = re.compile(r":(.*?);")


@dataclass
class ModelRequest:
    """Provider-ready request: system instruction, contents, and sampling config."""
    model: str
    contents: List[Dict[str, Any]]
    temperature: float
    system_instruction: Optional[str] = None
    generation_config: Dict[str, Any] = field(default_factory=dict)


def decode_image_data_uri(uri: str) -> Optional[Tuple[str, bytes]]:
    """Purpose: Split an image data URI into its mime type and raw bytes.
    Inputs/Outputs: Input is a reference string; output is (mime_type, bytes) or None.
    Side Effects / State: None.
    Dependencies: Uses base64 and MIME_RE.
    Failure Modes: Non-data URIs, missing payloads, or invalid base64 return None.
    If Removed: Uploaded images cannot be sent to the model.
    Testing Notes: "data:image/png;base64,iVBO..." -> ("image/png", b"\\x89PNG...").
    """
    # Remote URLs are not fetched; only inline data URIs are forwarded.
    if not uri.startswith(DATA_URI_PREFIX):
        return None
    header, _, payload = uri.partition(",")
    if not header or not payload:
        return None
    match = MIME_RE.search(header)
    mime_type = match.group(1) if match and match.group(1) else DEFAULT_IMAGE_MIME
    try:
        data = base64.b64decode(payload, validate=False)
    except (binascii.Error, ValueError):
        logger.warning("dropping undecodable image mime=%s", mime_type)
        return None
    if not data:
        return None
    return mime_type, data


def split_system_instruction(turns: Sequence[Turn]) -> Tuple[str, List[Turn]]:
    """Purpose: Separate system turns from conversational turns.
    Inputs/Outputs: Input is the turn list; output is (instruction, remaining turns).
    Side Effects / State: None.
    Dependencies: None.
    Failure Modes: None; no system turns yields an empty instruction.
    If Removed: System prompts would be sent as model turns.
    Testing Notes: Two system turns join with a blank line and are trimmed.
    """
    system_parts: List[str] = []
    conversation: List[Turn] = []
    for turn in turns:
        if turn.role == "system":
            system_parts.append(turn.text)
        else:
            conversation.append(turn)
    return "\n\n".join(system_parts).strip(), conversation


def build_contents(turns: Sequence[Turn]) -> List[Dict[str, Any]]:
    """Purpose: Convert turns into Gemini content entries with text and inline images.
    Inputs/Outputs: Input is conversational turns; output is a list of
        {"role", "parts"} dicts.
    Side Effects / State: None.
    Dependencies: Uses decode_image_data_uri.
    Failure Modes: Undecodable images are skipped; text is always sent.
    If Removed: The model call has no conversation payload.
    Testing Notes: An assistant turn maps to role "model"; evidence turns map to "user".
    """
    contents: List[Dict[str, Any]] = []
    for turn in turns:
        parts: List[Dict[str, Any]] = [{"text": turn.text}]
        for image in turn.images:
            decoded = decode_image_data_uri(image)
            if decoded is None:
                continue
            mime_type, data = decoded
            parts.append({"inline_data": {"mime_type": mime_type, "data": data}})
        contents.append({"role": "user" if turn.role == "user" else "model", "parts": parts})
    return contents


def build_model_request(turns: Sequence[Turn], model: str, temperature: float) -> ModelRequest:
    """Purpose: Assemble the outbound model request from the final turn list.
    Inputs/Outputs: Inputs are turns (including evidence), model, and temperature;
        output is a ModelRequest.
    Side Effects / State: None.
    Dependencies: Uses split_system_instruction and build_contents.
    Failure Modes: Raises InvalidInput when only system turns were supplied.
    If Removed: The generation step cannot call the provider.
    Testing Notes: Empty system instruction is None; generation_config has temperature.
    """
    instruction, conversation = split_system_instruction(turns)
    if not conversation:
        raise InvalidInput("Invalid messages")
    return ModelRequest(
        model=model,
        contents=build_contents(conversation),
        temperature=temperature,
        system_instruction=instruction or None,
        generation_config={"temperature": temperature},
    )
