"""
Crash-safe cleanup of a test session's containers.

- :mod:`testharbor.reaper.client`: registers a session with the sidecar.
- :mod:`testharbor.reaper.agent`: the sidecar itself.
- :mod:`testharbor.reaper.sweeper`: label-filtered, idempotent removal.
"""

from testharbor.reaper.agent import ReaperAgent
from testharbor.reaper.client import Reaper, ReaperState
from testharbor.reaper.protocol import ProtocolError, decode_filter, encode_filter
from testharbor.reaper.sweeper import SweepReport, sweep, sweep_filter

__all__ = [
    "ProtocolError",
    "Reaper",
    "ReaperAgent",
    "ReaperState",
    "SweepReport",
    "decode_filter",
    "encode_filter",
    "sweep",
    "sweep_filter",
]
