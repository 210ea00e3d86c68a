"""NDJSON framing for the gatherer's two remote operations.

Request:  {"method": "Gatherer.Send", "params": {...message...}}
          {"method": "Gatherer.SendMultiple", "params": [{...}, ...]}
Response: {"status": "ok"} or {"status": "error", "message": "<reason>"}
"""

import json

from gatherlogs.models import LogMessage

SEND = "Gatherer.Send"
SEND_MULTIPLE = "Gatherer.SendMultiple"
METHODS = (SEND, SEND_MULTIPLE)


class ProtocolError(Exception):
    """Raised when a line cannot be decoded as a request or response."""


class RemoteCallError(Exception):
    """Raised when the gatherer answers a call with an error status."""


def _encode(obj: dict) -> bytes:
    return (json.dumps(obj, separators=(",", ":")) + "\n").encode("utf-8")


def encode_request(method: str, params) -> bytes:
    return _encode({"method": method, "params": params})


def encode_send(msg: LogMessage) -> bytes:
    return encode_request(SEND, msg.to_dict())


def encode_send_multiple(msgs: list[LogMessage]) -> bytes:
    return encode_request(SEND_MULTIPLE, [m.to_dict() for m in msgs])


def encode_response(status: str, message: str | None = None) -> bytes:
    resp = {"status": status}
    if message is not None:
        resp["message"] = message
    return _encode(resp)


def decode_line(line: bytes) -> dict:
    """Decode one NDJSON line into a dict."""
    try:
        obj = json.loads(line.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProtocolError("invalid JSON") from e
    if not isinstance(obj, dict):
        raise ProtocolError("expected JSON object")
    return obj


def decode_request(line: bytes) -> tuple[str, list[LogMessage]]:
    """Decode a request line into (method, messages).

    Send carries exactly one message; SendMultiple carries a list in the
    order the caller gave it.
    """
    req = decode_line(line)
    method = req.get("method")
    if method not in METHODS:
        raise ProtocolError(f"unknown method: {method}")
    params = req.get("params")
    try:
        if method == SEND:
            return method, [LogMessage.from_dict(params)]
        if not isinstance(params, list):
            raise ProtocolError("SendMultiple expects a list of messages")
        return method, [LogMessage.from_dict(p) for p in params]
    except ValueError as e:
        raise ProtocolError(f"invalid message: {e}") from e


def check_response(line: bytes):
    """Raise RemoteCallError unless the response line reports success."""
    resp = decode_line(line)
    if resp.get("status") != "ok":
        raise RemoteCallError(resp.get("message", "unknown error"))
