"""
Initializes the tools package: sets up the ToolManager and registers all tools
from handlers.py.

The registry is built once at import and is identical for every turn. The
ToolExecutor is not a global here: it is constructed with the active capability
backends (see `capabilities.build_capabilities`) by the orchestrator factory, so
tests and alternative deployments can inject their own backends.
"""

import logging
from typing import Optional

from capabilities.base import CapabilityClients
from core.error_classifier import ErrorClassifier

from .core import ToolManager, ToolExecutor, Tool
from .handlers import register_all_tools

# 1. Instantiate ToolManager
tool_manager = ToolManager()

# 2. Register all tools using the function from handlers.py
register_all_tools(tool_manager)
logging.info("ToolManager instantiated and populated in tools package.")


def build_tool_executor(capabilities: CapabilityClients,
                        classifier: Optional[ErrorClassifier] = None) -> ToolExecutor:
    """Create a ToolExecutor bound to the global registry and the given capability backends."""
    return ToolExecutor(tool_manager, capabilities, classifier)


def get_tool_definitions() -> list:
    """Convenience function to get tool definitions from the global tool_manager."""
    return tool_manager.get_definitions()


__all__ = [
    'Tool',
    'ToolManager',
    'ToolExecutor',
    'tool_manager',
    'build_tool_executor',
    'get_tool_definitions',
]
