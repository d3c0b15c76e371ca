from __future__ import annotations

from .configuration import load_request, request_from_payload, request_to_payload, save_request

__all__ = [
    "load_request",
    "request_from_payload",
    "request_to_payload",
    "save_request",
]
