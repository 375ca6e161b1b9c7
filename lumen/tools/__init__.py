"""Tool framework - import tool modules here to register them."""

# Import tool modules so their registrations execute.
# To add a tool family, create a file in lumen/tools/ and add an import here.
from lumen.tools import (  # noqa: F401
    data_tools,
    document_tools,
    search_tools,
    web_tools,
    widget_tools,
)
from lumen.tools.registry import registry

__all__ = ["registry"]
