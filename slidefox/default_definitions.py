from slidefox.core.tools import (
    AddSlideTool,
    DeleteSlideTool,
    GetPresentationTool,
    ReorderSlideTool,
    SlideToolkit,
    UpdateSlideTool,
)

PRESENTATION_TOOLKIT = [
    GetPresentationTool,
    AddSlideTool,
    UpdateSlideTool,
    DeleteSlideTool,
    ReorderSlideTool,
]

USER_MESSAGE_TRIGGER = "user-message"
USER_MESSAGE_INPUT = "USER_MESSAGE"

DEFAULT_THEME = "modern"
DEFAULT_SESSION_TITLE = "New Presentation"


def get_default_toolkit() -> SlideToolkit:
    """Toolkit registered with the agent on every trigger."""
    return SlideToolkit(PRESENTATION_TOOLKIT)
