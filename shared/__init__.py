"""
shared/__init__.py

Shared utilities and models used across multiple modules.

This package contains common functionality used by the API layer, the
orchestrator, the tool dispatcher and the capabilities:
- models: Common data structures and type definitions
- utils: Utility functions and helpers
"""
