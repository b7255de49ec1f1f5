"""
Session identity and ownership labels.

Every container created through testharbor is stamped with the labels
returned by :func:`labels_for`. The reaper sidecar finds the resources of a
session through exactly this label set, so the keys here are part of the
wire contract with the sidecar.
"""

import uuid
from typing import Mapping

LABEL_MANAGED = "org.testharbor"
LABEL_SESSION_ID = "org.testharbor.sessionId"
LABEL_REAP = "org.testharbor.reap"
LABEL_SIDECAR = "org.testharbor.sidecar"

REAPER_NAME_PREFIX = "testharbor-reaper-"


def new_session_id() -> str:
    """Return a new globally unique session identifier."""
    return str(uuid.uuid4())


def labels_for(session_id: str, guarded: bool = True) -> dict[str, str]:
    """
    Build the ownership label set for a session.

    Args:
        session_id: Session the resource belongs to.
        guarded: Whether the reaper may sweep the resource. Opted-out
            resources keep the session label for observability.
    """
    return {
        LABEL_MANAGED: "true",
        LABEL_SESSION_ID: session_id,
        LABEL_REAP: "true" if guarded else "false",
    }


def merge_labels(caller: Mapping[str, str] | None, ownership: Mapping[str, str]) -> dict[str, str]:
    """Merge ownership labels into caller labels; ownership keys always win."""
    merged = dict(caller or {})
    merged.update(ownership)
    return merged


def reaper_name(session_id: str) -> str:
    """Well-known container name of the reaper sidecar for a session."""
    return f"{REAPER_NAME_PREFIX}{session_id}"
