from typing import Literal

from pydantic import BaseModel

ConnectionErrorCategory = Literal[
    "timeout",
    "connection_refused",
    "dns_failure",
    "tls_error",
    "network_error",
    "server_error",
    "unknown",
]


class ConnectionErrorInfo(BaseModel):
    is_connection_error: bool
    category: ConnectionErrorCategory
    confidence: float
    summary: str
