"""kAI - intent detection, content classification and action dispatch."""

__version__ = "0.1.0"
__logo__ = "✦"
