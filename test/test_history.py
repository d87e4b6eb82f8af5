import threading

from basegas.core.history import GasHistory
from basegas.core.models import GasEstimateRecord


def record(raw: int) -> GasEstimateRecord:
    return GasEstimateRecord(raw_estimate=raw, buffered_estimate=raw)


def test_unbounded_history_keeps_everything():
    history = GasHistory()
    for i in range(50):
        history.append(record(i))
    assert len(history) == 50
    assert [r.raw_estimate for r in history.recent(3)] == [47, 48, 49]
    assert len(history.recent(100)) == 50


def test_clear_resets_total():
    history = GasHistory(capacity=2)
    for i in range(5):
        history.append(record(i))
    assert history.total_recorded == 5
    history.clear()
    assert len(history) == 0
    assert history.total_recorded == 0
    assert history.recent(10) == []


def test_concurrent_appends_are_not_lost():
    history = GasHistory(capacity=1000)

    def worker():
        for i in range(200):
            history.append(record(i))

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert history.total_recorded == 1000
    assert len(history) == 1000
