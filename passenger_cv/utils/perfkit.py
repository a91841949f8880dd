#!/usr/bin/env python3
"""
perfkit.py
────────────────────────────────────────────────────────
Infrastructure glue for the training stage

  ⏱  @perfclass      – wall-clock, RSS mem, peak-mem per public method
  ⚙️  ParallelMixin   – n_jobs resolution + joblib parallel_map

Environment knobs
  FAST_MODE=1          skip per-call book-keeping
  MAX_RAM_FRACTION=95  warn when a method starts above this RAM %
  PERF_N_JOBS=4|0.5    default n_jobs (int = workers, float = core fraction)
"""
from __future__ import annotations
import os
import time
import functools
import inspect
import logging
from typing import Callable, Any, Dict, List, Sequence, Union

import psutil
from joblib import Parallel, delayed, cpu_count

log = logging.getLogger("passenger_cv.perfkit")

_PEAK_RSS_MB: float = 0.0
_proc = psutil.Process(os.getpid())


def peak_rss_mb() -> float:
    return _PEAK_RSS_MB


# ═══════════════════════════════════════════════════════════════
# 1 ▸  CLASS-LEVEL PROFILER  (@perfclass)
# ═══════════════════════════════════════════════════════════════
def perfclass(skip: Callable[[str], bool] = lambda m: m.startswith("_")):
    """
    Decorate a *class* so every **public** method is profiled.

    Adds
        · self._perf_log : List[Dict]
        · self.perf_report()  : aggregated list
    """
    def decorate(cls):

        orig_init = cls.__init__

        @functools.wraps(orig_init)
        def __init__(self, *a, **kw):
            self._perf_log: List[Dict[str, Any]] = []
            orig_init(self, *a, **kw)

        def _wrap(name, fn):

            @functools.wraps(fn)
            def inner(self, *a, **kw):
                fast = os.getenv("FAST_MODE", "0") in {"1", "true", "yes"}

                thr = float(os.getenv("MAX_RAM_FRACTION", "95"))
                mem_pct = psutil.virtual_memory().percent
                if mem_pct > thr:
                    log.warning("%s: RAM usage %.1f%% above threshold %s%%",
                                name, mem_pct, thr)

                rss_before = _proc.memory_info().rss
                t0 = time.perf_counter()

                out = fn(self, *a, **kw)

                dt = time.perf_counter() - t0
                rss_after = _proc.memory_info().rss

                global _PEAK_RSS_MB
                _PEAK_RSS_MB = max(_PEAK_RSS_MB, rss_after / 2**20)

                if not fast:
                    self._perf_log.append(dict(
                        method=name,
                        seconds=dt,
                        delta_mb=round((rss_after - rss_before) / 2**20, 3),
                        rss_mb=round(rss_after / 2**20, 1),
                    ))
                return out

            return inner

        for n, m in list(cls.__dict__.items()):
            if inspect.isfunction(m) and not skip(n):
                setattr(cls, n, _wrap(n, m))

        cls.__init__ = __init__

        def perf_report(self) -> List[Dict[str, Any]]:
            agg: Dict[str, Dict] = {}
            for rec in self._perf_log:
                d = agg.setdefault(rec["method"],
                                   dict(calls=0, seconds=0.0,
                                        delta_mb=0.0, rss_mb=0.0))
                d["calls"] += 1
                d["seconds"] += rec["seconds"]
                d["delta_mb"] += rec["delta_mb"]
                d["rss_mb"] = max(d["rss_mb"], rec["rss_mb"])

            return sorted([
                dict(method=k,
                     calls=v["calls"],
                     seconds=round(v["seconds"], 3),
                     mem_peak_mb=round(v["rss_mb"], 1),
                     mem_delta_mb=round(v["delta_mb"], 3))
                for k, v in agg.items()
            ], key=lambda r: r["seconds"], reverse=True)
        cls.perf_report = perf_report
        return cls

    return decorate


# ═══════════════════════════════════════════════════════════════
# 2 ▸  PARALLEL MIX-IN
# ═══════════════════════════════════════════════════════════════
def resolve_n_jobs(n_jobs: Union[int, float, None] = None) -> int:
    """int → that many workers (-1 = all cores), float → fraction of cores,
    None → PERF_N_JOBS or 50 % of cores."""
    env = os.getenv("PERF_N_JOBS")
    if n_jobs is None and env is not None:
        try:
            n_jobs = float(env) if "." in env else int(env)
        except ValueError:
            n_jobs = None

    if n_jobs is None:
        n_jobs = 0.5
    if isinstance(n_jobs, float):
        n_jobs = max(int(cpu_count() * n_jobs), 1)
    if n_jobs < 0:
        n_jobs = cpu_count()
    return max(int(n_jobs), 1)


class ParallelMixin:
    """
    self.parallel_map(fn, items, *, min_tasks=2, prefer="processes")

    Model fits hold the GIL for most of their runtime, so processes are the
    default; threads stay available for light I/O-bound maps.
    """

    def __init__(self,
                 *a,
                 n_jobs: Union[int, float, None] = None,
                 **kw):
        super().__init__(*a, **kw)
        self._n_jobs = resolve_n_jobs(n_jobs)

    @property
    def n_jobs(self) -> int:
        return self._n_jobs

    def parallel_map(self,
                     fn: Callable[[Any], Any],
                     items: Sequence[Any],
                     *,
                     min_tasks: int = 2,
                     prefer: str = "processes") -> List[Any]:

        if len(items) == 0:
            return []
        if self._n_jobs == 1 or len(items) < min_tasks:
            return [fn(x) for x in items]

        log.debug("Parallel → %d jobs (%s) × %d tasks",
                  self._n_jobs, prefer, len(items))
        return Parallel(n_jobs=self._n_jobs, prefer=prefer)(
            delayed(fn)(x) for x in items
        )
