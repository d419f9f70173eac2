"""
core/__init__.py

Core orchestration modules.

This package contains the central coordination logic of the assistant:
- orchestrator: per-turn coordination (staging, history, model call, dispatch record)
- validation: request-level checks applied before a turn starts
- error_classifier: maps failures onto the user-presentable error taxonomy

These modules handle the high-level flow of a user turn through the system.
"""
