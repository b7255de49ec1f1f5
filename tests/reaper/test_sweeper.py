"""Tests for label-filtered sweeping against a fake docker client."""

from unittest.mock import Mock

import pytest
from docker.errors import APIError, NotFound

from testharbor.errors import SweepError
from testharbor.reaper.sweeper import SweepReport, sweep, sweep_filter
from testharbor.session import LABEL_SIDECAR, labels_for


class FakeResource:
    def __init__(self, store: dict, kind: str, resource_id: str, labels=None, error=None):
        self.store = store
        self.kind = kind
        self.id = resource_id
        self.labels = labels or {}
        self.error = error

    def remove(self, **kwargs):
        if self.error is not None:
            raise self.error
        if self.id not in self.store[self.kind]:
            raise NotFound(f"{self.kind} {self.id} not found")
        del self.store[self.kind][self.id]


class FakeClient:
    """Keeps containers, networks and volumes in dicts keyed by id."""

    def __init__(self):
        self.store = {"containers": {}, "networks": {}, "volumes": {}}
        self.containers = Mock()
        self.networks = Mock()
        self.volumes = Mock()
        self.containers.list.side_effect = lambda all=False, filters=None: list(self.store["containers"].values())
        self.networks.list.side_effect = lambda filters=None: list(self.store["networks"].values())
        self.volumes.list.side_effect = lambda filters=None: list(self.store["volumes"].values())

    def add(self, kind: str, resource_id: str, **kwargs) -> FakeResource:
        resource = FakeResource(self.store, kind, resource_id, **kwargs)
        self.store[kind][resource_id] = resource
        return resource


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()


def test_removes_everything_matching(fake_client):
    fake_client.add("containers", "c1")
    fake_client.add("containers", "c2")
    fake_client.add("networks", "n1")
    fake_client.add("volumes", "v1")

    report = sweep_filter(fake_client, labels_for("s1"))

    assert report.ok
    assert sorted(report.removed) == ["container/c1", "container/c2", "network/n1", "volume/v1"]
    assert fake_client.store == {"containers": {}, "networks": {}, "volumes": {}}


def test_filters_passed_to_docker(fake_client):
    sweep_filter(fake_client, {"org.testharbor.sessionId": "s1"})
    fake_client.containers.list.assert_called_once_with(
        all=True, filters={"label": ["org.testharbor.sessionId=s1"]}
    )


def test_sweep_is_idempotent(fake_client):
    fake_client.add("containers", "c1")
    first = sweep(fake_client, [labels_for("s1")])
    second = sweep(fake_client, [labels_for("s1")])

    assert first.removed == ["container/c1"]
    assert second.ok
    assert second.removed == []


def test_continues_past_failures(fake_client):
    fake_client.add("containers", "c1", error=APIError("boom", response=Mock(status_code=500)))
    fake_client.add("containers", "c2")
    fake_client.add("volumes", "v1")

    report = sweep_filter(fake_client, labels_for("s1"))

    assert not report.ok
    assert "container/c1" in report.errors
    assert report.removed == ["container/c2", "volume/v1"]
    with pytest.raises(SweepError) as exc_info:
        report.raise_for_errors()
    assert exc_info.value.report is report


def test_already_gone_counts_as_missing(fake_client):
    fake_client.add("containers", "c1", error=NotFound("gone"))
    fake_client.add("containers", "c2", error=APIError("in progress", response=Mock(status_code=409)))

    report = sweep_filter(fake_client, labels_for("s1"))

    assert report.ok
    assert report.missing == ["container/c1", "container/c2"]


def test_list_failure_is_recorded(fake_client):
    fake_client.networks.list.side_effect = APIError("daemon down")
    fake_client.add("volumes", "v1")

    report = sweep_filter(fake_client, labels_for("s1"))

    assert "list networks" in report.errors
    assert report.removed == ["volume/v1"]


def test_sidecar_is_never_swept(fake_client):
    fake_client.add("containers", "reaper", labels={LABEL_SIDECAR: "true"})
    fake_client.add("containers", "c1")

    report = sweep_filter(fake_client, labels_for("s1"))

    assert report.removed == ["container/c1"]
    assert "reaper" in fake_client.store["containers"]


def test_report_summary_and_merge():
    report = SweepReport(removed=["container/a"])
    report.merge(SweepReport(missing=["volume/b"], errors={"network/c": "busy"}))
    assert report.summary() == "1 removed, 1 already gone, 1 failed"
