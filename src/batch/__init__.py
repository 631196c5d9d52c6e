"""
Batch execution of rate fill runs
"""

from .batch_orchestrator import BatchOrchestrator, CancellationToken, DEFAULT_MAX_CONCURRENCY
from .progress_throttle import ProgressThrottle

__all__ = [
    'BatchOrchestrator',
    'CancellationToken',
    'DEFAULT_MAX_CONCURRENCY',
    'ProgressThrottle'
]
