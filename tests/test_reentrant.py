import threading

import pytest

from callwatch.instrument import Target


def test_recursion_emits_once_for_outermost_frame(registry, clock):
    class Walker:
        def walk(self, depth):
            clock.advance(0.01)
            if depth:
                self.walk(depth - 1)
            return depth

    emitted = []
    registry.attach(
        Target(Walker, "walk", True),
        lambda context, receiver, elapsed, depth: emitted.append((depth, elapsed)),
        reentrant_token="walk",
    )

    assert Walker().walk(3) == 3

    assert emitted == [(3, pytest.approx(0.04))]
    assert registry.timing.counters() == {}


def test_shared_token_counts_nested_operations_once(registry, clock):
    class Connection:
        def execute(self, sql):
            clock.advance(0.005)
            return self.query(sql)

        def query(self, sql):
            clock.advance(0.015)
            return sql

    emitted = []

    def on_time(context, receiver, elapsed, sql):
        emitted.append((sql, elapsed))

    registry.attach(Target(Connection, "execute", True), on_time, reentrant_token="db")
    registry.attach(Target(Connection, "query", True), on_time, reentrant_token="db")

    connection = Connection()
    connection.execute("select 1")
    assert emitted == [("select 1", pytest.approx(0.02))]

    connection.query("select 2")
    assert emitted[1] == ("select 2", pytest.approx(0.015))


def test_counter_released_when_call_raises(registry, clock):
    class Connection:
        def execute(self, sql):
            raise ConnectionError("gone")

    emitted = []
    registry.attach(
        Target(Connection, "execute", True),
        lambda *args, **kwargs: emitted.append(args[2]),
        reentrant_token="db",
    )

    for _ in range(2):
        with pytest.raises(ConnectionError):
            Connection().execute("select 1")

    assert len(emitted) == 2
    assert registry.timing.counters() == {}


def test_counters_are_per_thread(registry):
    entered = threading.Event()
    release = threading.Event()
    emitted = []

    class Connection:
        def execute(self, name):
            if name == "slow":
                entered.set()
                release.wait(5)
            return name

    registry.attach(
        Target(Connection, "execute", True),
        lambda context, receiver, elapsed, name: emitted.append(name),
        reentrant_token="db",
    )

    worker = threading.Thread(target=Connection().execute, args=("slow",))
    worker.start()
    assert entered.wait(5)

    # The worker is still inside its frame; this thread's entry is outermost here
    Connection().execute("fast")
    assert emitted == ["fast"]

    release.set()
    worker.join(5)
    assert emitted == ["fast", "slow"]


def test_reentrant_mode_requires_token(registry):
    with pytest.raises(ValueError):
        registry.register(lambda *a, **k: None, "reentrant-timing")


def test_only_within_gates_reentrant_emission(registry):
    class Connection:
        def execute(self, sql, depth=0):
            if depth:
                return self.execute(sql, depth - 1)
            return sql

    class Views:
        def render(self, connection):
            return connection.execute("select 1", depth=2)

    emitted = []
    registry.attach(Target(Views, "render", True), lambda *args, **kwargs: None, mark_as="render")
    registry.attach(
        Target(Connection, "execute", True),
        lambda context, receiver, elapsed, sql, depth=0: emitted.append(sql),
        reentrant_token="db",
        only_within="render",
    )

    connection = Connection()
    connection.execute("select 0", depth=2)
    assert emitted == []

    assert Views().render(connection) == "select 1"
    assert emitted == ["select 1"]
    assert registry.timing.counters() == {}
