"""Tool framework: importing this package registers the built-in tools."""

# Import tool modules so their @registry.tool() decorators execute.
from conduit.tools import builtin  # noqa: F401
from conduit.tools.registry import registry

__all__ = ["registry"]
