import threading

from everycall.voice.cancellation import UtteranceCancellationRegistry


class _Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_mark_consume_clear():
    registry = UtteranceCancellationRegistry()
    assert registry.mark("u1") is False
    assert registry.contains("u1")
    assert registry.consume("u1") is True
    assert registry.consume("u1") is False
    registry.mark("u2")
    registry.clear("u2")
    assert not registry.contains("u2")


def test_mark_reports_in_flight_stream():
    registry = UtteranceCancellationRegistry()
    registry.begin("u1")
    assert registry.in_flight("u1")
    assert registry.mark("u1") is True
    registry.finish("u1")
    assert not registry.in_flight("u1")
    # finish drops a mark the stream never observed
    assert not registry.contains("u1")


def test_stop_is_idempotent():
    registry = UtteranceCancellationRegistry()
    for _ in range(3):
        registry.mark("u1")
    assert len(registry) == 1
    assert registry.consume("u1") is True
    assert len(registry) == 0


def test_orphan_marks_expire():
    clock = _Clock()
    registry = UtteranceCancellationRegistry(ttl_sec=60, clock=clock)
    registry.mark("orphan")
    clock.now += 59
    assert registry.contains("orphan")
    clock.now += 2
    assert not registry.contains("orphan")


def test_marks_for_in_flight_streams_do_not_expire():
    clock = _Clock()
    registry = UtteranceCancellationRegistry(ttl_sec=60, clock=clock)
    registry.begin("live")
    registry.mark("live")
    clock.now += 3600
    assert registry.consume("live") is True


def test_concurrent_marks_and_consumes():
    registry = UtteranceCancellationRegistry()
    ids = [f"u{i}" for i in range(200)]
    consumed = []
    lock = threading.Lock()

    def marker():
        for uid in ids:
            registry.mark(uid)

    def consumer():
        for uid in ids:
            if registry.consume(uid):
                with lock:
                    consumed.append(uid)

    threads = [threading.Thread(target=marker)] + [threading.Thread(target=consumer) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    # Every mark is consumed at most once
    assert len(consumed) == len(set(consumed))
    leftover = [uid for uid in ids if registry.consume(uid)]
    assert sorted(consumed + leftover) == sorted(ids)
