"""Personal assistant conversational turn engine."""

__version__ = "0.1.0"
