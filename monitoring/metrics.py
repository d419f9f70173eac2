"""
Core metrics and monitoring decorators for the Policy Assistant.

This module defines Prometheus metrics and decorators for tracking:
- Turn processing time
- Error rates
- Tool execution time and outcomes
- External API latency (LLM and capability backends)
- Conversation session counts and sweeps
"""

import time
import functools
import logging
from typing import Optional, Callable
from prometheus_client import Counter, Gauge, Histogram

logger = logging.getLogger(__name__)

# Error metrics
ERROR_COUNT = Counter(
    'error_total',
    'Total number of errors',
    ['type', 'location']  # type: e.g., 'turn', 'tool', 'sweep'; location: specific component
)

# Turn metrics
TURN_PROCESSING_TIME = Histogram(
    'turn_processing_duration_seconds',
    'Time spent processing one conversation turn',
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, float("inf")]
)

# Tool execution metrics
TOOL_EXECUTION_TIME = Histogram(
    'tool_execution_duration_seconds',
    'Time spent executing tools',
    ['tool_name'],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, float("inf")]
)

TOOL_INVOCATIONS = Counter(
    'tool_invocations_total',
    'Tool invocations dispatched on behalf of the model',
    ['tool_name', 'outcome']  # outcome: 'success', 'file_not_found', 'bad_arguments', 'error'
)

# External API metrics
LLM_REQUEST_TIME = Histogram(
    'llm_request_duration_seconds',
    'Time spent waiting for LLM API',
    ['model'],
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 30.0, float("inf")]
)

CAPABILITY_REQUEST_TIME = Histogram(
    'capability_request_duration_seconds',
    'Time spent waiting for a capability backend (document, image, email)',
    ['capability'],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, float("inf")]
)

# Session metrics
ACTIVE_CONVERSATIONS = Gauge(
    'active_conversations',
    'Number of conversation sessions currently held in memory'
)

SESSIONS_SWEPT = Counter(
    'sessions_swept_total',
    'Conversation sessions removed by the idle sweep'
)

def track_latency(metric: Histogram, labels: Optional[Callable] = None) -> Callable:
    """
    A decorator factory that tracks the execution time of a function using a Prometheus Histogram.

    Args:
        metric (Histogram): The Prometheus Histogram to record the timing in
        labels (Callable, optional): Function that receives the first positional
            argument (``self`` for methods) and returns the metric labels dictionary

    Returns:
        Callable: The decorated function
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.time()
            try:
                return func(*args, **kwargs)
            finally:
                duration = time.time() - start_time
                if labels and args:
                    label_dict = labels(args[0])
                    metric.labels(**label_dict).observe(duration)
                else:
                    metric.observe(duration)

                func_name = func.__name__
                logger.debug(
                    f"Function {func_name} execution time: {duration:.2f} seconds",
                    extra={'extra_fields': {'duration': duration, 'function': func_name}}
                )
        return wrapper
    return decorator

def track_errors(error_type: str, location: str) -> Callable:
    """
    A decorator factory that counts errors raised by a function.

    Args:
        error_type (str): Type of error (e.g., 'turn', 'tool', 'capability')
        location (str): Where the error occurred

    Returns:
        Callable: The decorated function

    Example:
        @track_errors('turn', 'orchestrator')
        def process_turn(self, conversation_id, message, files):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                ERROR_COUNT.labels(
                    type=error_type,
                    location=location
                ).inc()
                logger.debug(
                    f"Error in {location} ({error_type}): {type(e).__name__}",
                    extra={'extra_fields': {'error_type': error_type, 'location': location}}
                )
                raise
        return wrapper
    return decorator
