"""
Deep Research - budgeted search, evidence aggregation and cited synthesis
"""

__version__ = "1.0.0"
__author__ = "Deep Research Team"

__all__ = [
    "IterationController",
    "Outline",
    "Settings",
    "__version__",
    "__author__",
]

def __getattr__(name: str):
    """Lazy import to avoid import-time side effects."""
    if name == "IterationController":
        from .orchestration.controller import IterationController
        return IterationController
    elif name == "Outline":
        from .models import Outline
        return Outline
    elif name == "Settings":
        from deep_research.config import Settings
        return Settings
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
