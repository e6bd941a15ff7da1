from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from callwatch._version import __version__
from callwatch.host import PROCESS_ID
from callwatch.reporting.codec import codec
from callwatch.reporting.payloads import (
    DataPayload,
    ExceptionsPayload,
    InfoPayload,
    Payload,
    PingPayload,
    TracePayload,
)
from callwatch.scm import ScmInfo


STARTED = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)


def test_params_are_flattened():
    payload = Payload(data=None, params={"count": 3, "skip": None, "at": STARTED, "tags": ["a"]})

    assert payload.params == {"count": 3, "at": "2024-03-01T08:00:00Z", "tags": "['a']"}


def test_payloads_are_immutable():
    payload = DataPayload.build([])

    with pytest.raises(ValidationError):
        payload.data = [1]


def test_info_payload_describes_host_and_scm(stub_host):
    scm = ScmInfo(revision="abc123", time="2024-02-01T00:00:00Z", scm_type="git", url=None)

    payload = InfoPayload.build({"metric.db": "db"}, STARTED, stub_host, scm)

    assert payload.kind == "info"
    assert payload.path_suffix == "processes.json"
    assert payload.data == {"metric.db": "db"}
    params = payload.params
    assert params["type"] == "info"
    assert params["hostname"] == "worker-1"
    assert params["pid"] == 4242
    assert params["process_id"] == PROCESS_ID
    assert params["agent_version"] == __version__
    assert params["started_at"] == "2024-03-01T08:00:00Z"
    assert params["scm_revision"] == "abc123"
    assert params["scm_type"] == "git"
    assert "scm_url" not in params
    assert "pwd" in params


def test_ping_payload_carries_info_params(stub_host):
    payload = PingPayload.build({}, STARTED, stub_host)

    assert payload.params["type"] == "ping"
    assert payload.path_suffix == "ping"
    assert "scm_revision" not in payload.params


@pytest.mark.parametrize(
    "payload_class, kind, suffix",
    [
        (DataPayload, "data", "metrics.json"),
        (ExceptionsPayload, "exceptions", "exceptions.json"),
        (TracePayload, "trace", "traces.json"),
    ],
)
def test_interval_payload_params(payload_class, kind, suffix):
    payload = payload_class.build([{"total": 1}])

    assert payload.path_suffix == suffix
    assert payload.params["type"] == kind
    assert payload.params["process_id"] == PROCESS_ID
    assert payload.params["collected_at"].endswith("Z")


def test_compressed_body_and_json():
    payload = DataPayload.build([{"metric": "db", "value": 1.5}])

    assert payload.to_json() == '[{"metric":"db","value":1.5}]'
    assert codec.unpack(payload.compressed()) == [{"metric": "db", "value": 1.5}]


def test_with_params_copies():
    payload = ExceptionsPayload.build([])
    extended = payload.with_params(app_id="tok")

    assert isinstance(extended, ExceptionsPayload)
    assert extended.params["app_id"] == "tok"
    assert "app_id" not in payload.params
