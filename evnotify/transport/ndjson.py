from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

from evnotify.domain.events import (
    StationBooted,
    StationEvent,
    StatusFailure,
    StatusSuspendedEV,
    TransactionEnded,
    TransactionStarted,
    WebSocketConnected,
    WebSocketDisconnected,
)
from evnotify.domain.models import RegistrationStatus


def _str_to_dt(s: str) -> datetime:
    """
    Convert an ISO-8601 datetime string to a naive UTC datetime.

    Values with an offset (or a trailing ``Z``) are converted to UTC and
    stripped of their tzinfo; values without one are taken as UTC already.

    Raises
    ------
    ValueError
        If the input is not a valid ISO formatted datetime string.
    """
    text = str(s)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def _opt_str(v: Any) -> Optional[str]:
    return None if v is None else str(v)


def _opt_int(v: Any) -> Optional[int]:
    return None if v is None else int(v)


def _decode_obj(obj: Dict[str, Any]) -> StationEvent:
    """
    Decode a message dictionary into a lifecycle event.

    Supported message types
    -----------------------
    ``station_booted``, ``websocket_connected``, ``websocket_disconnected``,
    ``status_failure``, ``status_suspended_ev``, ``transaction_started``,
    ``transaction_ended``.

    Meter values are kept as strings; they are validated only when used.

    Raises
    ------
    KeyError
        If required fields for a given message type are missing.
    ValueError
        If ``type`` is unknown or if field conversions fail.
    """
    t = obj.get("type")

    if t == "station_booted":
        status = obj.get("registration_status")
        return StationBooted(
            charge_box_id=str(obj["charge_box_id"]),
            status=RegistrationStatus(status) if status else None,
            timestamp=_str_to_dt(obj["timestamp"]),
        )

    if t == "websocket_connected":
        return WebSocketConnected(
            charge_box_id=str(obj["charge_box_id"]),
            timestamp=_str_to_dt(obj["timestamp"]),
        )

    if t == "websocket_disconnected":
        return WebSocketDisconnected(
            charge_box_id=str(obj["charge_box_id"]),
            timestamp=_str_to_dt(obj["timestamp"]),
        )

    if t == "status_failure":
        return StatusFailure(
            charge_box_id=str(obj["charge_box_id"]),
            connector_id=int(obj["connector_id"]),
            error_code=str(obj.get("error_code", "")),
            timestamp=_str_to_dt(obj["timestamp"]),
        )

    if t == "status_suspended_ev":
        return StatusSuspendedEV(
            charge_box_id=str(obj["charge_box_id"]),
            connector_id=int(obj["connector_id"]),
            timestamp=_str_to_dt(obj["timestamp"]),
        )

    if t == "transaction_started":
        return TransactionStarted(
            transaction_id=int(obj["transaction_id"]),
            charge_box_id=str(obj["charge_box_id"]),
            connector_id=int(obj["connector_id"]),
            id_tag=_opt_str(obj.get("id_tag")),
            start_timestamp=_str_to_dt(obj["start_timestamp"]),
            start_meter_value=str(obj.get("start_meter_value", "")),
            reservation_id=_opt_int(obj.get("reservation_id")),
        )

    if t == "transaction_ended":
        return TransactionEnded(
            transaction_id=int(obj["transaction_id"]),
            charge_box_id=str(obj["charge_box_id"]),
            stop_timestamp=_str_to_dt(obj["stop_timestamp"]),
            stop_meter_value=str(obj.get("stop_meter_value", "")),
            stop_reason=_opt_str(obj.get("stop_reason")),
        )

    raise ValueError(f"Unknown message type: {t}")


def iter_json_objects(text: str) -> Iterator[Dict[str, Any]]:
    """
    Yield one or more JSON objects found in a string.

    This function is robust against inputs where multiple JSON objects are
    accidentally concatenated without delimiters, e.g.::

        '{"a": 1}{"b": 2}'

    Only dictionary objects are yielded (non-dict JSON like lists/strings are ignored).
    """
    s = text.strip()
    if not s:
        return

    dec = json.JSONDecoder()
    i = 0
    n = len(s)

    while i < n:
        while i < n and s[i].isspace():
            i += 1
        if i >= n:
            break

        obj, end = dec.raw_decode(s, i)
        if isinstance(obj, dict):
            yield obj
        i = end


def decode_event(line: str) -> StationEvent:
    """
    Decode an NDJSON line into a lifecycle event.

    If the sender concatenates multiple JSON objects into a single line, the
    **first valid JSON object** is decoded.

    Raises
    ------
    ValueError
        If no JSON object is found or if the message type is unknown.
    """
    for obj in iter_json_objects(line):
        return _decode_obj(obj)

    raise ValueError("No JSON object found in line")
