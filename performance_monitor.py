#!/usr/bin/env python3
"""
Performance Monitor for Incident Batch Automation

Measures how long each record takes to process and how the process' memory
moves while it runs, so a batch can close with a timing summary.
"""

import time
import psutil
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

# Operations slower than this are logged individually
SLOW_OPERATION_SECONDS = 30.0


@dataclass
class PerformanceMetrics:
    """Performance metrics for a single operation"""
    operation_name: str
    start_time: float
    end_time: float
    duration: float
    memory_before: float
    memory_after: float
    memory_delta: float
    success: bool
    error_message: Optional[str] = None
    additional_data: Dict[str, Any] = field(default_factory=dict)


class PerformanceMonitor:
    """Collects per-operation timings for one batch"""

    def __init__(self, enable_monitoring: bool = True):
        self.enable_monitoring = enable_monitoring
        self.operation_metrics: List[PerformanceMetrics] = []
        self._process = psutil.Process()

    @asynccontextmanager
    async def measure_async_operation(self, operation_name: str, additional_data: Dict[str, Any] = None):
        """Async context manager for measuring operation performance"""
        if not self.enable_monitoring:
            yield
            return

        start_time = time.time()
        memory_before = self._get_current_memory_usage()
        success = False
        error_message = None

        try:
            yield
            success = True
        except Exception as e:
            error_message = str(e)
            raise
        finally:
            end_time = time.time()
            memory_after = self._get_current_memory_usage()

            metric = PerformanceMetrics(
                operation_name=operation_name,
                start_time=start_time,
                end_time=end_time,
                duration=end_time - start_time,
                memory_before=memory_before,
                memory_after=memory_after,
                memory_delta=memory_after - memory_before,
                success=success,
                error_message=error_message,
                additional_data=additional_data or {}
            )
            self.operation_metrics.append(metric)

            if metric.duration > SLOW_OPERATION_SECONDS:
                logger.info(f"Performance: {operation_name} took {metric.duration:.2f}s, "
                            f"memory delta: {metric.memory_delta:.2f}MB")

    def _get_current_memory_usage(self) -> float:
        """Get current memory usage in MB"""
        try:
            return self._process.memory_info().rss / 1024 / 1024
        except psutil.Error:
            return 0.0

    def get_performance_summary(self) -> Dict[str, Any]:
        """Get current performance summary"""
        if not self.operation_metrics:
            return {}

        total_operations = len(self.operation_metrics)
        successful_operations = sum(1 for m in self.operation_metrics if m.success)
        durations = [m.duration for m in self.operation_metrics]

        return {
            'total_operations': total_operations,
            'successful_operations': successful_operations,
            'total_duration': sum(durations),
            'average_duration': sum(durations) / total_operations,
            'max_duration': max(durations),
            'memory_peak_mb': max(m.memory_after for m in self.operation_metrics),
        }
