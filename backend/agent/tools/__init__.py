"""
Agent Tools

The function catalog advertised to the model and the executor that runs it.
"""

from agent.tools.catalog import DECLARATIONS, FunctionCatalog, FunctionDeclaration
from agent.tools.executor import HANDLERS, ToolExecutor, check_coverage

__all__ = [
    "DECLARATIONS",
    "FunctionCatalog",
    "FunctionDeclaration",
    "HANDLERS",
    "ToolExecutor",
    "check_coverage",
]
