from collections import deque
from typing import Deque, Dict, Any, List, Optional
from pydantic import BaseModel

from infrastructure.observability.logging import agent_logger


MAX_DURATION_SAMPLES = 100


class NodePerformance(BaseModel):
    """Aggregated timings for one phase"""
    node_name: str
    average_duration: float
    call_count: int
    error_count: int
    error_rate: float
    last_error: Optional[str] = None
    min_duration: float
    max_duration: float


class _NodeMetrics:
    __slots__ = ("durations", "errors", "total_calls", "last_error")

    def __init__(self):
        self.durations: Deque[float] = deque(maxlen=MAX_DURATION_SAMPLES)
        self.errors = 0
        self.total_calls = 0
        self.last_error: Optional[str] = None


class PerformanceMonitor:
    """Collect per-phase durations and error counts"""

    def __init__(self):
        self.node_metrics: Dict[str, _NodeMetrics] = {}

    def record_duration(
        self,
        phase: str,
        duration_ms: float,
        errored: bool = False,
        error: Optional[str] = None
    ):
        """Record one phase execution"""

        metrics = self.node_metrics.get(phase)
        if metrics is None:
            metrics = self.node_metrics[phase] = _NodeMetrics()

        metrics.durations.append(duration_ms)
        metrics.total_calls += 1
        if errored:
            metrics.errors += 1
            metrics.last_error = error

        agent_logger.logger.debug(
            "metric",
            metric_type="latency",
            operation=phase,
            duration_ms=duration_ms,
            errored=errored
        )

    def get_node_metrics(self, phase: str) -> Optional[NodePerformance]:
        metrics = self.node_metrics.get(phase)
        if metrics is None or metrics.total_calls == 0:
            return None

        durations = list(metrics.durations)
        return NodePerformance(
            node_name=phase,
            average_duration=sum(durations) / len(durations) if durations else 0.0,
            call_count=metrics.total_calls,
            error_count=metrics.errors,
            error_rate=metrics.errors / metrics.total_calls,
            last_error=metrics.last_error,
            min_duration=min(durations) if durations else 0.0,
            max_duration=max(durations) if durations else 0.0,
        )

    def get_report(self) -> List[NodePerformance]:
        """Flat report, slowest phases first"""

        report = [self.get_node_metrics(name) for name in self.node_metrics]
        return sorted(
            (perf for perf in report if perf is not None),
            key=lambda perf: perf.average_duration,
            reverse=True
        )

    def get_grouped_report(self, separator: str = ":") -> Dict[str, List[NodePerformance]]:
        """Report grouped by the name prefix before ``separator``"""

        grouped: Dict[str, List[NodePerformance]] = {}
        for perf in self.get_report():
            parts = perf.node_name.split(separator, 1)
            group = parts[0] if len(parts) > 1 else "general"
            grouped.setdefault(group, []).append(perf)
        return grouped

    def get_metrics_summary(self) -> Dict[str, Any]:
        return {perf.node_name: perf.model_dump() for perf in self.get_report()}

    def reset(self):
        self.node_metrics.clear()
