"""Tool framework. Import tool modules here to register them."""

# Import tool modules so their @registry.tool() decorators execute.
# To add a new tool group, create a file in src/tools/ and add an import here.
from src.tools import productivity_tools  # noqa: F401
from src.tools.registry import registry

__all__ = ["registry"]
