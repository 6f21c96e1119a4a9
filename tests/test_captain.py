import json
import threading
import urllib.error
import urllib.request
from datetime import datetime, timedelta, timezone

import pytest

from freyr.captain import (
    METRIC_CONSCRIPTS_ACTUAL,
    METRIC_CONSCRIPTS_TARGET,
    METRIC_CONSCRIPTS_UNIQUE,
    TARGET_ERROR,
    CaptainController,
    CaptainMetrics,
    Conscript,
    make_server,
)
from freyr.trig import TrigArgs, get_value

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

TRIG_CONFIG = json.dumps({"mode": "trig", "trig": {"duration": "120s", "min": 5, "max": 20}})
WEATHER_CONFIG = json.dumps({"mode": "weather", "weather": {"city": "Melbourne", "country": "AU"}})


def trig_controller():
    return CaptainController.from_env(
        {"OPERATOR_CONFIG": TRIG_CONFIG, "NAME": "alpha", "NAMESPACE": "fleet"}
    )


def test_from_env_reads_spec_and_identity():
    controller = trig_controller()
    assert controller.spec.mode == "trig"
    assert controller.spec.trig.duration == "120s"
    assert controller.name == "alpha"
    assert controller.namespace == "fleet"


@pytest.mark.parametrize("config", ["", "not json", "[1, 2]"])
def test_from_env_rejects_bad_config(config):
    with pytest.raises(ValueError, match="error unmarshalling operator config"):
        CaptainController.from_env({"OPERATOR_CONFIG": config})


def test_enlist_reports_new_and_updates_last_seen():
    controller = trig_controller()
    assert controller.enlist("10.0.0.1:4000", T0) is True
    later = T0 + timedelta(seconds=1)
    assert controller.enlist("10.0.0.1:4000", later) is False
    assert controller.conscripts == {"10.0.0.1:4000": Conscript("10.0.0.1:4000", later)}


def test_metrics_count_unique_and_actual():
    controller = trig_controller()
    controller.enlist("10.0.0.1:1", T0)
    controller.enlist("10.0.0.1:1", T0)
    controller.enlist("10.0.0.2:1", T0)
    values = controller.metrics.observe()
    assert values[METRIC_CONSCRIPTS_UNIQUE] == 2
    assert values[METRIC_CONSCRIPTS_ACTUAL] == len(controller.conscripts)


def test_metrics_target_is_zero_when_trig_invalid():
    controller = CaptainController.from_env({"OPERATOR_CONFIG": WEATHER_CONFIG})
    assert controller.metrics.observe()[METRIC_CONSCRIPTS_TARGET] == 0


def test_captain_metrics_direct_callbacks():
    metrics = CaptainMetrics(lambda: 7.9, lambda: 3)
    metrics.inc_unique()
    assert metrics.observe() == {
        METRIC_CONSCRIPTS_TARGET: 7,
        METRIC_CONSCRIPTS_ACTUAL: 3,
        METRIC_CONSCRIPTS_UNIQUE: 1,
    }


def test_docket_reports_target_and_roster():
    controller = trig_controller()
    controller.enlist("10.0.0.1:1", T0)
    docket = controller.docket(T0)
    expected_target = int(get_value(TrigArgs("120s", 5, 20), T0))
    assert docket.get("target", 0) == expected_target
    assert docket["actual"] == 1
    assert list(docket["conscripts"]) == ["10.0.0.1:1"]
    assert docket["conscripts"]["10.0.0.1:1"] == "2024-05-01T12:00:00Z"
    assert docket["operator"] == controller.spec.to_dict()
    assert docket["name"] == "alpha"


def test_docket_raises_without_trig_duration():
    controller = CaptainController.from_env({"OPERATOR_CONFIG": WEATHER_CONFIG})
    with pytest.raises(ValueError, match=TARGET_ERROR):
        controller.docket(T0)


def test_purge_removes_only_stale():
    controller = trig_controller()
    controller.enlist("old:1", T0)
    controller.enlist("new:1", T0 + timedelta(seconds=5))
    removed = controller.purge_conscripts(T0 + timedelta(seconds=6))
    assert removed == ["old:1"]
    assert set(controller.conscripts) == {"new:1"}


def test_purge_keeps_within_stale_period():
    controller = trig_controller()
    controller.enlist("a:1", T0)
    assert controller.purge_conscripts(T0 + controller.stale_after) == []
    assert set(controller.conscripts) == {"a:1"}


def test_run_purger_stops_when_event_set():
    controller = trig_controller()
    controller.enlist("a:1", datetime.now(timezone.utc) - timedelta(minutes=1))
    stop = threading.Event()
    stop.set()
    controller.run_purger(stop)
    assert controller.conscripts == {}


def test_docket_page_contains_chart_and_roster():
    controller = trig_controller()
    controller.enlist("10.0.0.9:1", T0)
    page = controller.docket_page(T0)
    assert "alpha" in page
    assert "10.0.0.9:1" in page
    assert "12:00:00" in page
    assert "*" in page


@pytest.fixture
def served():
    controller = trig_controller()
    server = make_server(controller, "127.0.0.1", 0)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    base = f"http://127.0.0.1:{server.server_address[1]}"
    yield controller, base
    server.shutdown()
    server.server_close()


def test_server_enlist_then_conscripts(served):
    controller, base = served
    with urllib.request.urlopen(base + "/enlist") as response:
        assert response.status == 200
    with urllib.request.urlopen(base + "/conscripts") as response:
        docket = json.loads(response.read())
    assert docket["actual"] == 1
    assert all(key.startswith("127.0.0.1:") for key in docket["conscripts"])
    assert set(docket["conscripts"]) == set(controller.conscripts)


def test_server_root_serves_html(served):
    _, base = served
    with urllib.request.urlopen(base + "/") as response:
        body = response.read().decode()
        assert response.headers["Content-Type"].startswith("text/html")
    assert "alpha" in body


def test_server_unknown_path_is_404(served):
    _, base = served
    with pytest.raises(urllib.error.HTTPError) as info:
        urllib.request.urlopen(base + "/missing")
    assert info.value.code == 404