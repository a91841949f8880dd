# utils/monitor.py

import functools
import inspect
import logging
import sys
import time
import traceback
import tracemalloc

import psutil

logger = logging.getLogger("passenger_cv.monitor")


def estimate_size(obj):
    try:
        if hasattr(obj, 'memory_usage'):
            return obj.memory_usage(deep=True).sum() / 1024**2
        elif hasattr(obj, 'data') and hasattr(obj.data, 'memory_usage'):
            # ModelingFrame and friends
            return obj.data.memory_usage(deep=True).sum() / 1024**2
        elif hasattr(obj, 'nbytes'):
            return obj.nbytes / 1024**2
        elif isinstance(obj, list):
            return sum(sys.getsizeof(i) for i in obj) / 1024**2
        else:
            return sys.getsizeof(obj) / 1024**2
    except (TypeError, ValueError, AttributeError):
        return None


def log_resource_usage(step_id: str):
    cpu = psutil.cpu_percent(interval=None)
    mem = psutil.virtual_memory().percent
    logger.info(f"[{step_id}] CPU: {cpu:.1f}% | RAM: {mem:.1f}%")


def monitor(name: str = None,
            log_args: bool = False,
            log_result: bool = False,
            track_memory: bool = False,
            track_input_size: bool = False,
            enabled: bool = True):
    """
    Decorator for stage functions: logs start / success / failure with timing,
    and optionally input sizes, result shape and peak traced memory.
    Exceptions are logged with their traceback and re-raised unchanged.
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            if not enabled:
                return func(*args, **kwargs)

            step_id = name or func.__name__
            start_time = time.time()
            logger.info(f"[{step_id}] STARTED")

            if track_input_size:
                sig = inspect.signature(func)
                bound = sig.bind(*args, **kwargs)
                bound.apply_defaults()
                sizes = {}
                for k, v in bound.arguments.items():
                    size = estimate_size(v)
                    if size is not None:
                        sizes[k] = f"{size:.2f} MB"
                logger.info(f"[{step_id}] Input sizes: {sizes}")

            if log_args:
                logger.info(f"[{step_id}] Args: {args}")
                logger.info(f"[{step_id}] Kwargs: {kwargs}")

            started_tracing = False
            if track_memory and not tracemalloc.is_tracing():
                tracemalloc.start()
                started_tracing = True

            try:
                result = func(*args, **kwargs)
            except Exception as e:
                duration = time.time() - start_time
                logger.error(f"[{step_id}] FAILED in {duration:.2f}s")
                logger.error(f"[{step_id}] Exception: {e}")
                logger.error(traceback.format_exc())
                raise
            finally:
                if started_tracing:
                    current, peak = tracemalloc.get_traced_memory()
                    logger.info(
                        f"[{step_id}] Peak memory: {peak / 1024 / 1024:.2f} MB")
                    tracemalloc.stop()

            duration = time.time() - start_time
            logger.info(f"[{step_id}] SUCCESS in {duration:.2f}s")

            if log_result:
                logger.info(f"[{step_id}] Result type: {type(result)}")
                if hasattr(result, 'shape'):
                    logger.info(f"[{step_id}] Result shape: {result.shape}")

            log_resource_usage(step_id)
            return result

        return wrapper
    return decorator
