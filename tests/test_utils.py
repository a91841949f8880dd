import logging

import pytest
from joblib import cpu_count

from passenger_cv.utils.monitor import monitor
from passenger_cv.utils.perfkit import ParallelMixin, peak_rss_mb, perfclass, resolve_n_jobs


def test_monitor_logs_success(caplog):
    @monitor(name="double")
    def double(x):
        return 2 * x

    with caplog.at_level(logging.INFO, logger="passenger_cv.monitor"):
        assert double(4) == 8
    assert "[double] STARTED" in caplog.text
    assert "[double] SUCCESS" in caplog.text


def test_monitor_reraises_and_logs_failure(caplog):
    @monitor(name="boom")
    def boom():
        raise ValueError("bad input")

    with caplog.at_level(logging.INFO, logger="passenger_cv.monitor"):
        with pytest.raises(ValueError, match="bad input"):
            boom()
    assert "[boom] FAILED" in caplog.text


def test_resolve_n_jobs(monkeypatch):
    monkeypatch.delenv("PERF_N_JOBS", raising=False)
    assert resolve_n_jobs(3) == 3
    assert resolve_n_jobs(-1) == cpu_count()
    assert resolve_n_jobs(0.5) == max(int(cpu_count() * 0.5), 1)
    monkeypatch.setenv("PERF_N_JOBS", "1")
    assert resolve_n_jobs(None) == 1


def test_perfclass_records_public_methods():
    @perfclass()
    class Worker(ParallelMixin):
        def run(self, items):
            return self.parallel_map(abs, items)

    w = Worker(n_jobs=1)
    assert w.run([-1, 2, -3]) == [1, 2, 3]
    report = w.perf_report()
    assert [r["method"] for r in report] == ["run"]
    assert report[0]["calls"] == 1


def test_perfclass_warns_instead_of_refusing_above_ram_threshold(monkeypatch, caplog):
    @perfclass()
    class Worker:
        def run(self):
            return "done"

    monkeypatch.setenv("MAX_RAM_FRACTION", "-1")
    with caplog.at_level(logging.WARNING, logger="passenger_cv.perfkit"):
        assert Worker().run() == "done"
    assert "RAM usage" in caplog.text


def test_peak_rss_tracked_after_profiled_call():
    @perfclass()
    class Worker:
        def run(self):
            return [0] * 1000

    Worker().run()
    assert peak_rss_mb() > 0
