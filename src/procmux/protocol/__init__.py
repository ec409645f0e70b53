"""Wire protocol: outbound envelopes, inbound messages and their JSON codec."""

from .codec import decode_inbound, decode_outbound, encode_envelope
from .envelope import Envelope, OutboundEnvelope
from .inbound import InboundMessage

__all__ = [
    "Envelope",
    "InboundMessage",
    "OutboundEnvelope",
    "decode_inbound",
    "decode_outbound",
    "encode_envelope",
]
