"""
Monitoring package initializer.

This package exposes Prometheus metrics and helper decorators for tracking turn
processing, tool dispatch, external API latency and session lifecycle.
"""

from .metrics import (
    ERROR_COUNT,
    TURN_PROCESSING_TIME,
    TOOL_EXECUTION_TIME,
    TOOL_INVOCATIONS,
    LLM_REQUEST_TIME,
    CAPABILITY_REQUEST_TIME,
    ACTIVE_CONVERSATIONS,
    SESSIONS_SWEPT,
    track_latency,
    track_errors,
)

__all__ = [
    'ERROR_COUNT',
    'TURN_PROCESSING_TIME',
    'TOOL_EXECUTION_TIME',
    'TOOL_INVOCATIONS',
    'LLM_REQUEST_TIME',
    'CAPABILITY_REQUEST_TIME',
    'ACTIVE_CONVERSATIONS',
    'SESSIONS_SWEPT',
    'track_latency',
    'track_errors',
]
