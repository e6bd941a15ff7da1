import pytest

from callwatch.instrument import HandlerMode, Target
from callwatch.metric import Metric


def test_captured_exception_is_recorded_and_reraised(registry, session):
    class Orders:
        def place(self, order_id):
            raise ValueError(f"bad order {order_id}")

    Metric("order_errors").instrument(
        registry, session, Target(Orders, "place", True), capture_exceptions=True
    )

    with pytest.raises(ValueError, match="bad order 7"):
        Orders().place(7)

    [entry] = session.exception_data
    assert entry["name"] == "builtins.ValueError"
    assert entry["message"] == "bad order 7"
    assert entry["total"] == 1
    assert entry["backtrace"]
    assert entry["sample"]["metric"] == "order_errors"
    assert entry["sample"]["receiver"].endswith("Orders")


def test_identical_exceptions_are_grouped(registry, session):
    class Orders:
        def place(self, order_id):
            raise ValueError("out of stock")

    Metric("order_errors").instrument(
        registry, session, Target(Orders, "place", True), capture_exceptions=True
    )

    for order_id in (1, 2, 3):
        with pytest.raises(ValueError):
            Orders().place(order_id)

    [entry] = session.exception_data
    assert entry["total"] == 3


def test_different_messages_are_separate_entries(registry, session):
    class Orders:
        def place(self, order_id):
            raise ValueError(f"bad order {order_id}")

    Metric("order_errors").instrument(
        registry, session, Target(Orders, "place", True), capture_exceptions=True
    )

    for order_id in (1, 2):
        with pytest.raises(ValueError):
            Orders().place(order_id)

    assert sorted(entry["message"] for entry in session.exception_data) == [
        "bad order 1",
        "bad order 2",
    ]


def test_successful_call_records_nothing(registry, session):
    class Orders:
        def place(self, order_id):
            return order_id

    offset = registry.attach(
        Target(Orders, "place", True), lambda error, receiver, *args: None, capture_exceptions=True
    )

    assert registry.handler(offset).mode is HandlerMode.EXCEPTION_CAPTURING
    assert Orders().place(5) == 5
    assert session.exception_data == []


def test_failing_sample_handler_keeps_original_error(registry, session):
    class Orders:
        def place(self):
            raise ValueError("original")

    def broken(error, receiver):
        raise RuntimeError("handler bug")

    registry.attach(Target(Orders, "place", True), broken, capture_exceptions=True)

    with pytest.raises(ValueError, match="original"):
        Orders().place()

    assert session.exception_data == []


def test_unrecordable_sample_keeps_original_error(registry, session):
    class Cache:
        def fetch(self):
            raise KeyError("original")

    registry.attach(
        Target(Cache, "fetch", True), lambda error, receiver: {1: "a", "b": 2}, capture_exceptions=True
    )

    with pytest.raises(KeyError, match="original"):
        Cache().fetch()

    assert session.exception_data == []


def test_base_exceptions_are_not_captured(registry, session):
    class Worker:
        def run(self):
            raise SystemExit(3)

    registry.attach(Target(Worker, "run", True), lambda error, receiver: None, capture_exceptions=True)

    with pytest.raises(SystemExit):
        Worker().run()

    assert session.exception_data == []


def test_capture_without_session_still_reraises(registry):
    registry.session = None

    class Orders:
        def place(self):
            raise ValueError("no session")

    registry.attach(Target(Orders, "place", True), lambda error, receiver: None, capture_exceptions=True)

    with pytest.raises(ValueError):
        Orders().place()
