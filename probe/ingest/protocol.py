"""Wire types for probe events and their responses."""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any


class ResultCode(Enum):
    OK = 0
    NOT_REGISTERED = 1
    VERSION_MISMATCH = 2
    UNSUPPORTED_METHOD = 3

    @property
    def message(self) -> str:
        return _MESSAGES[self]


_MESSAGES = {
    ResultCode.OK: "",
    ResultCode.NOT_REGISTERED: "Not registered client",
    ResultCode.VERSION_MISMATCH: "Client version smaller than requested version",
    ResultCode.UNSUPPORTED_METHOD: "Request method not supported",
}


class MalformedRequest(ValueError):
    """The outer event is missing fields or has the wrong types."""


INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1


def _utf8_encodable(value: str) -> bool:
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


@dataclass
class Response:
    status: int
    error_code: int = 0
    message: str | None = None

    @classmethod
    def ok(cls) -> "Response":
        return cls(status=200)

    @classmethod
    def from_code(cls, code: ResultCode) -> "Response":
        if code is ResultCode.OK:
            return cls.ok()
        return cls(status=400, error_code=code.value, message=code.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "error_code": self.error_code,
            "message": self.message,
        }


@dataclass
class ProbeRequest:
    version: str
    action: str
    uuid: str
    body: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> "ProbeRequest":
        """Validate a decoded JSON event."""
        if not isinstance(data, dict):
            raise MalformedRequest("Request must be a JSON object")
        for field in ("version", "action", "uuid"):
            value = data.get(field)
            if not isinstance(value, str) or not _utf8_encodable(value):
                raise MalformedRequest(f"Missing or invalid field: {field}")
        if not data["uuid"].strip():
            raise MalformedRequest("Field uuid must not be empty")
        body = data.get("body")
        if body is not None and (not isinstance(body, str) or not _utf8_encodable(body)):
            raise MalformedRequest("Field body must be a UTF-8 string")
        return cls(
            version=data["version"],
            action=data["action"],
            uuid=data["uuid"],
            body=body,
        )


@dataclass
class ClientInfo:
    """Metadata a client sends in the body of a register event."""

    hostname: str | None
    boot_time: int

    @classmethod
    def parse(cls, body: str | None) -> "ClientInfo | None":
        """Decode the body, or return None if it is absent or unusable."""
        if not body:
            return None
        try:
            data = json.loads(body)
        except json.JSONDecodeError:
            return None
        if not isinstance(data, dict):
            return None
        boot_time = data.get("boot_time")
        if isinstance(boot_time, bool) or not isinstance(boot_time, int):
            return None
        if not INT64_MIN <= boot_time <= INT64_MAX:
            return None
        hostname = data.get("hostname")
        if not isinstance(hostname, str) or not hostname.strip() or not _utf8_encodable(hostname):
            hostname = None
        return cls(hostname=hostname, boot_time=boot_time)


def parse_version(version: str) -> tuple[int, ...] | None:
    """Parse a dotted numeric version like ``1.4.2``."""
    parts = version.strip().split(".")
    try:
        numbers = tuple(int(p) for p in parts)
    except ValueError:
        return None
    if any(n < 0 for n in numbers):
        return None
    return numbers


def version_satisfies(version: str, minimum: str) -> bool:
    """True if ``version`` is at least ``minimum``; unparsable versions never are."""
    current = parse_version(version)
    required = parse_version(minimum)
    if current is None:
        return False
    if required is None:
        raise ValueError(f"Invalid minimum version: {minimum}")
    width = max(len(current), len(required))
    current += (0,) * (width - len(current))
    required += (0,) * (width - len(required))
    return current >= required
