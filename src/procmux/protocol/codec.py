"""JSON codec for envelopes.

Outbound envelopes are compact JSON text frames. Inbound frames are validated
against the inbound union; failures raise ProtocolError subclasses which
handlers log and drop.
"""

from __future__ import annotations

__all__ = [
    "decode_inbound",
    "decode_outbound",
    "encode_envelope",
]

import json
from typing import Any

from pydantic import TypeAdapter, ValidationError

from procmux.exceptions import MalformedEnvelopeError, UnknownEnvelopeTypeError

from .envelope import Envelope, OutboundEnvelope
from .inbound import INBOUND_TYPES, InboundMessage

_inbound_adapter: TypeAdapter[Any] = TypeAdapter(InboundMessage)
_outbound_adapter: TypeAdapter[Any] = TypeAdapter(OutboundEnvelope)


def encode_envelope(envelope: Envelope) -> str:
    """Encode an envelope as a compact JSON text frame."""
    return json.dumps(envelope.to_wire(), separators=(",", ":"), ensure_ascii=False)


def _load_object(raw: str | bytes) -> dict[str, Any]:
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedEnvelopeError(f"Invalid JSON: {e}", raw) from e
    if not isinstance(payload, dict):
        raise MalformedEnvelopeError("Envelope must be a JSON object", raw)
    if not isinstance(payload.get("type"), str):
        raise MalformedEnvelopeError("Envelope is missing a string 'type'", raw)
    return payload


def decode_inbound(raw: str | bytes) -> InboundMessage:
    """Decode a client frame into an inbound message.

    Raises:
        MalformedEnvelopeError: Invalid JSON, not an object, or schema mismatch.
        UnknownEnvelopeTypeError: The type tag is not an inbound type.
    """
    payload = _load_object(raw)
    if payload["type"] not in INBOUND_TYPES:
        raise UnknownEnvelopeTypeError(payload["type"], raw)
    try:
        return _inbound_adapter.validate_python(payload)
    except ValidationError as e:
        raise MalformedEnvelopeError(f"Invalid '{payload['type']}' envelope: {e}", raw) from e


def decode_outbound(raw: str | bytes) -> Envelope:
    """Decode a server frame (used by clients and tests).

    Raises:
        MalformedEnvelopeError: If the frame is not a known outbound envelope.
    """
    payload = _load_object(raw)
    try:
        return _outbound_adapter.validate_python(payload)
    except ValidationError as e:
        raise MalformedEnvelopeError(f"Invalid outbound envelope: {e}", raw) from e
