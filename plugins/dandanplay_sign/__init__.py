"""
DanDanPlay Sign Plugin

Stateless подпись запросов DanDanPlay open API (X-AppId + X-Signature).
"""
from .interceptor import CALLER_ID_HEADER, SIGNATURE_HEADER, SigningMiddleware, create_signed_session
from .plugin import DanDanPlaySignPlugin
from .signature import canonical_string, sign

__all__ = [
    "CALLER_ID_HEADER",
    "SIGNATURE_HEADER",
    "DanDanPlaySignPlugin",
    "SigningMiddleware",
    "canonical_string",
    "create_signed_session",
    "sign",
]
