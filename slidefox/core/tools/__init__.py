from slidefox.core.tools.base_tool import BaseTool, ToolContext, format_validation_error
from slidefox.core.tools.export_pdf import ImageFetcher, PdfExportError, export_pdf
from slidefox.core.tools.slide_tools import (
    AddSlideTool,
    DeleteSlideTool,
    GetPresentationTool,
    ReorderSlideTool,
    UpdateSlideTool,
)
from slidefox.core.tools.toolkit import SlideToolkit

__all__ = [
    "BaseTool",
    "ToolContext",
    "format_validation_error",
    "ImageFetcher",
    "PdfExportError",
    "export_pdf",
    "AddSlideTool",
    "DeleteSlideTool",
    "GetPresentationTool",
    "ReorderSlideTool",
    "UpdateSlideTool",
    "SlideToolkit",
]
