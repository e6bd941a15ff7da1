import threading

import pytest

from callwatch.core.exceptions import ConfigurationError, SchedulingFault
from callwatch.core.tracing import Trace
from callwatch.host import PROCESS_STARTED_AT
from callwatch.reporting.reporter import Reporter


ENDPOINTS = ["https://collector.example.com", "file:///var/spool/callwatch"]


class FakeRouter:
    """Accepts or rejects per payload kind and records what it was given."""

    def __init__(self, accept=True):
        self.accept = accept
        self.payloads = []
        self.endpoints = []

    def store(self, payload, endpoints):
        self.payloads.append(payload)
        self.endpoints.append(list(endpoints))
        return self.accept(payload) if callable(self.accept) else self.accept

    @property
    def kinds(self):
        return [payload.kind for payload in self.payloads]


class StopLoop(Exception):
    pass


def stop_after(count, sleeps):
    def sleep(seconds):
        sleeps.append(seconds)
        if len(sleeps) >= count:
            raise StopLoop()

    return sleep


@pytest.fixture
def make_reporter(session, stub_host):
    reporters = []

    def make(router, **kwargs):
        kwargs.setdefault("host", stub_host)
        reporter = Reporter(session, router, ENDPOINTS, **kwargs)
        reporters.append(reporter)
        return reporter

    yield make
    for reporter in reporters:
        reporter.shutdown()


@pytest.mark.parametrize("interval", [0, -5, True, "60"])
def test_interval_must_be_positive(session, interval):
    with pytest.raises(ConfigurationError):
        Reporter(session, FakeRouter(), ENDPOINTS, interval=interval)


def test_interval_data_discarded_until_info_is_sent(make_reporter, session):
    router = FakeRouter(accept=lambda payload: payload.kind != "info")
    reporter = make_reporter(router)
    session.record("db", [], 0.5)

    assert reporter.send_info_update() is False
    assert reporter.send_data_update() is None
    assert reporter.send_exceptions_update() is None

    assert router.kinds == ["info"]
    assert session.data == []


def test_info_is_sent_once(make_reporter):
    router = FakeRouter()
    reporter = make_reporter(router)

    assert reporter.send_info_update() is True
    assert reporter.send_info_update() is True

    assert router.kinds == ["info"]
    assert router.endpoints == [ENDPOINTS]
    assert router.payloads[0].params["hostname"] == "worker-1"


def test_info_retried_until_accepted(make_reporter):
    outcomes = iter([False, True])
    router = FakeRouter(accept=lambda payload: next(outcomes))
    reporter = make_reporter(router)

    assert reporter.send_info_update() is False
    assert reporter.info_update_sent is False
    assert reporter.send_info_update() is True
    assert router.kinds == ["info", "info"]


def test_data_sent_after_info(make_reporter, session):
    router = FakeRouter()
    reporter = make_reporter(router)
    reporter.send_info_update()
    session.record("db", ["table", "orders"], 0.5)

    assert reporter.send_data_update().result() is True

    payload = router.payloads[-1]
    assert payload.kind == "data"
    assert payload.data == [
        {"metric": "db", "context": ["table", "orders"], "invocations": 1, "value": 0.5, "min": 0.5, "max": 0.5}
    ]
    assert session.data == []


def test_exceptions_sent_only_when_present(make_reporter, session):
    router = FakeRouter()
    reporter = make_reporter(router)
    reporter.send_info_update()

    assert reporter.send_exceptions_update() is None

    try:
        raise LookupError("missing order")
    except LookupError as e:
        session.add_exception(e, {"metric": "orders"})

    assert reporter.send_exceptions_update().result() is True
    assert router.kinds == ["info", "exceptions"]
    assert router.payloads[-1].data[0]["message"] == "missing order"


def test_router_failure_is_a_failed_send(make_reporter):
    def explode(payload):
        raise RuntimeError("router bug")

    reporter = make_reporter(FakeRouter(accept=explode))

    assert reporter.send_info_update() is False


def test_foreground_loop_raises_scheduling_fault(make_reporter):
    sleeps = []
    router = FakeRouter()
    reporter = make_reporter(router, interval=5, sleep=stop_after(2, sleeps))

    with pytest.raises(SchedulingFault) as excinfo:
        reporter.start(run_in_background=False)

    assert isinstance(excinfo.value.cause, StopLoop)
    assert sleeps == [5, 5]
    assert reporter.started_at == PROCESS_STARTED_AT
    assert reporter.foreground
    assert not reporter.alive

    reporter.shutdown()
    assert router.kinds == ["info", "data"]


def test_revive_ignores_foreground_reporter(make_reporter):
    reporter = make_reporter(FakeRouter(), sleep=stop_after(1, []))

    with pytest.raises(SchedulingFault):
        reporter.start(run_in_background=False)
    reporter.revive()

    assert reporter._thread is None


@pytest.mark.filterwarnings("ignore::pytest.PytestUnhandledThreadExceptionWarning")
def test_background_start_is_idempotent_and_revivable(make_reporter):
    entered = threading.Event()
    release = threading.Event()

    def sleep(seconds):
        entered.set()
        release.wait(5)
        raise StopLoop()

    reporter = make_reporter(FakeRouter(), sleep=sleep)
    assert not reporter.started

    reporter.start()
    assert entered.wait(5)
    first = reporter._thread
    assert reporter.background
    assert reporter.alive

    reporter.start()
    assert reporter._thread is first

    release.set()
    first.join(5)
    assert not reporter.alive

    reporter.revive()
    second = reporter._thread
    assert second is not first
    second.join(5)
    assert reporter.started_at == PROCESS_STARTED_AT


def test_not_started_reporter_is_not_alive(make_reporter):
    reporter = make_reporter(FakeRouter())
    reporter.revive()

    assert not reporter.started
    assert not reporter.alive
    assert reporter._thread is None


def test_send_trace(make_reporter):
    router = FakeRouter()
    reporter = make_reporter(router)

    assert reporter.send_trace(Trace()) is None

    trace = Trace("GET /orders")
    with trace.step("load"):
        pass

    assert reporter.send_trace(trace).result() is True
    payload = router.payloads[-1]
    assert payload.kind == "trace"
    assert payload.data["context"] == "GET /orders"
    assert payload.data["steps"][0]["name"] == "load"


def test_ping_is_synchronous(make_reporter):
    router = FakeRouter(accept=False)
    reporter = make_reporter(router)

    assert reporter.ping() is False
    assert router.kinds == ["ping"]
