"""Per-stage performance profiling for the mosaic pipeline."""

import threading
import time
from typing import Any, Callable, Dict

import psutil


class PerformanceProfiler:
    """Record execution time and resident memory for named pipeline stages.

    Each ``MosaicGenerator`` owns one profiler. Updates to ``metrics`` are
    serialized by a lock, so one profiler may be shared across threads.
    """

    def __init__(self):
        self.metrics: Dict[str, Dict[str, Any]] = {}
        self.process = psutil.Process()
        self._lock = threading.Lock()

    def measure(self, name: str, func: Callable, *args, **kwargs):
        """Call ``func(*args, **kwargs)`` and record it under ``name``."""
        start_memory = self.process.memory_info().rss
        start_time = time.perf_counter()

        result = func(*args, **kwargs)

        duration = time.perf_counter() - start_time
        end_memory = self.process.memory_info().rss

        with self._lock:
            existing = self.metrics.get(name, {
                'total_duration': 0.0,
                'peak_memory': start_memory,
                'calls': 0,
            })
            self.metrics[name] = {
                'duration': duration,
                'total_duration': existing['total_duration'] + duration,
                'memory_delta': end_memory - start_memory,
                'peak_memory': max(existing['peak_memory'], end_memory),
                'calls': existing['calls'] + 1,
            }
        return result

    def reset(self) -> None:
        """Forget all recorded metrics."""
        with self._lock:
            self.metrics = {}

    def get_summary(self) -> Dict[str, Any]:
        """Get performance summary."""
        with self._lock:
            metrics = dict(self.metrics)

        if not metrics:
            return {
                'total_time': 0.0,
                'peak_memory_mb': 0.0,
                'by_stage': {}
            }

        return {
            'total_time': sum(m['total_duration'] for m in metrics.values()),
            'peak_memory_mb': max(m['peak_memory'] for m in metrics.values()) / (1024 * 1024),
            'by_stage': metrics,
        }

    def format_summary(self, title: str = "Performance Summary") -> str:
        """Render the summary as printable text."""
        summary = self.get_summary()
        lines = [
            f"📊 {title}",
            "=" * (len(title) + 3),
            f"Total Time: {summary['total_time']:.2f}s",
            f"Peak Memory: {summary['peak_memory_mb']:.1f}MB",
        ]
        for name, metrics in summary['by_stage'].items():
            lines.append(
                f"  {name}: {metrics['total_duration']:.3f}s, "
                f"{metrics['memory_delta'] / (1024 * 1024):+.1f}MB, "
                f"{metrics['calls']} call(s)"
            )
        return "\n".join(lines)
