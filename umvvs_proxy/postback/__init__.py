"""Postback module - page scraping, delta codec, form replay, and the replay engine."""

from .cascade import Cascade, Dropdown, LEVELS
from .client import PostbackClient
from .delta import DeltaResponse, DeltaSegment, parse_delta, encode_delta, is_delta
from .engine import ReplayEngine
from .hidden_fields import extract_hidden_fields, extract_options, extract_page_state

__all__ = [
    "Cascade",
    "Dropdown",
    "LEVELS",
    "PostbackClient",
    "DeltaResponse",
    "DeltaSegment",
    "parse_delta",
    "encode_delta",
    "is_delta",
    "ReplayEngine",
    "extract_hidden_fields",
    "extract_options",
    "extract_page_state",
]
