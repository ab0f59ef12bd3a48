from .completion import Completion, completion_style
from .dispatcher import Dispatcher

__all__ = [
    "Completion",
    "completion_style",
    "Dispatcher",
]
