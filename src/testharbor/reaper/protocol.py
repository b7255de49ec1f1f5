"""
Line protocol spoken between a session and the reaper sidecar.

One line per registration, a URL query string of ``label`` parameters::

    label=org.testharbor%3Dtrue&label=org.testharbor.sessionId%3D...\\n

The sidecar answers ``ACK\\n`` once the filter is registered. The format is
the one used by the Ryuk sidecar, so either side can be swapped for it.
"""

from typing import Mapping
from urllib.parse import parse_qs, urlencode

ACK = b"ACK\n"
MAX_LINE = 64 * 1024


class ProtocolError(ValueError):
    """A registration line could not be decoded."""


def encode_filter(labels: Mapping[str, str]) -> bytes:
    if not labels:
        raise ProtocolError("a registration needs at least one label")
    query = urlencode([("label", f"{key}={value}") for key, value in sorted(labels.items())])
    return query.encode("utf-8") + b"\n"


def decode_filter(line: bytes) -> dict[str, str]:
    try:
        text = line.decode("utf-8").strip()
    except UnicodeDecodeError as e:
        raise ProtocolError(f"registration is not valid UTF-8: {e}") from e

    values = parse_qs(text, keep_blank_values=True, strict_parsing=False).get("label")
    if not values:
        raise ProtocolError(f"registration carries no labels: {text!r}")

    labels: dict[str, str] = {}
    for value in values:
        key, sep, label_value = value.partition("=")
        if not key:
            raise ProtocolError(f"empty label key in registration: {text!r}")
        labels[key] = label_value if sep else ""
    return labels


def label_filters(labels: Mapping[str, str]) -> list[str]:
    """Labels in the ``key=value`` form Docker list filters expect."""
    return [f"{key}={value}" for key, value in sorted(labels.items())]
