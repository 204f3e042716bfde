"""Terminal presentation layer."""

from .app import SignalTuiApp
from .keys import KeyInterpreter

__all__ = ["KeyInterpreter", "SignalTuiApp"]
