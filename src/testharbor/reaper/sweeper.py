"""
Label-filtered removal of a session's resources.

A sweep never stops at the first failure: resources that are already gone
are recorded as missing, other failures are collected, and every remaining
resource is still attempted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping

from docker.errors import APIError, DockerException, NotFound
from requests.exceptions import RequestException

import docker
from testharbor.config.logging_config import get_logger
from testharbor.errors import SweepError
from testharbor.reaper.protocol import label_filters
from testharbor.session import LABEL_SIDECAR

log = get_logger(__name__)

_FAILURES = (APIError, DockerException, RequestException)


@dataclass
class SweepReport:
    """What a sweep removed, found already gone, or failed to remove."""

    removed: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    def merge(self, other: "SweepReport") -> None:
        self.removed.extend(other.removed)
        self.missing.extend(other.missing)
        self.errors.update(other.errors)

    def summary(self) -> str:
        return f"{len(self.removed)} removed, {len(self.missing)} already gone, {len(self.errors)} failed"

    def raise_for_errors(self) -> None:
        if self.errors:
            details = "; ".join(f"{key}: {message}" for key, message in self.errors.items())
            raise SweepError(f"sweep failed for {len(self.errors)} resources: {details}", self)


def _remove_each(
    report: SweepReport,
    kind: str,
    items: Iterable[Any],
    remove: Callable[[Any], None],
) -> None:
    for item in items:
        key = f"{kind}/{item.id}"
        try:
            remove(item)
        except NotFound:
            report.missing.append(key)
        except APIError as e:
            # 409: removal already in progress
            if e.status_code == 409:
                report.missing.append(key)
            else:
                report.errors[key] = str(e.explanation or e)
        except (DockerException, RequestException) as e:
            report.errors[key] = str(e)
        else:
            report.removed.append(key)


def sweep_filter(client: docker.DockerClient, labels: Mapping[str, str]) -> SweepReport:
    """Remove containers, then networks, then volumes carrying every label in ``labels``."""
    report = SweepReport()
    filters = {"label": label_filters(labels)}

    try:
        containers = [
            c
            for c in client.containers.list(all=True, filters=filters)
            if (c.labels or {}).get(LABEL_SIDECAR) != "true"
        ]
    except _FAILURES as e:
        report.errors["list containers"] = str(e)
        containers = []
    _remove_each(report, "container", containers, lambda c: c.remove(force=True, v=True))

    try:
        networks = client.networks.list(filters=filters)
    except _FAILURES as e:
        report.errors["list networks"] = str(e)
        networks = []
    _remove_each(report, "network", networks, lambda n: n.remove())

    try:
        volumes = client.volumes.list(filters=filters)
    except _FAILURES as e:
        report.errors["list volumes"] = str(e)
        volumes = []
    _remove_each(report, "volume", volumes, lambda v: v.remove(force=True))

    return report


def sweep(client: docker.DockerClient, filters: Iterable[Mapping[str, str]]) -> SweepReport:
    """
    Sweep every filter in turn and aggregate the results.

    Sweeping the same filter twice is harmless: the second pass finds
    nothing left to remove.
    """
    report = SweepReport()
    for labels in filters:
        result = sweep_filter(client, labels)
        log.info("Swept %s: %s", dict(labels), result.summary())
        for key, message in result.errors.items():
            log.warning("Could not remove %s: %s", key, message)
        report.merge(result)
    return report
