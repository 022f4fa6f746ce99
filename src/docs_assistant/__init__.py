"""Docs assistant package exports."""

from .config import Settings, load_settings
from .deadline import Deadline
from .engine import AnswerResult, RAGEngine, build_engine, get_default_engine, reset_default_engine
from .errors import AssistantError

__all__ = [
    "__version__",
    "Settings",
    "load_settings",
    "Deadline",
    "AnswerResult",
    "RAGEngine",
    "build_engine",
    "get_default_engine",
    "reset_default_engine",
    "AssistantError",
]

__version__ = "0.1.0"
