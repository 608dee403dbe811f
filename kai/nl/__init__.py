"""Natural-language intent detection."""

from kai.nl.intent_engine import EscalationStrategy, IntentEngine, PatternClassifier
from kai.nl.patterns import DEFAULT_TABLES, PatternTables

__all__ = ["DEFAULT_TABLES", "EscalationStrategy", "IntentEngine", "PatternClassifier", "PatternTables"]
