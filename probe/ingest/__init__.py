"""Ingestion of probe register/heartbeat events."""

from probe.ingest.handler import IngestionHandler, Outcome, online_message
from probe.ingest.protocol import (
    ClientInfo,
    MalformedRequest,
    ProbeRequest,
    Response,
    ResultCode,
)

__all__ = [
    "IngestionHandler",
    "Outcome",
    "online_message",
    "ClientInfo",
    "MalformedRequest",
    "ProbeRequest",
    "Response",
    "ResultCode",
]
