"""Attachment and link classifiers."""

from kai.analysis.links import LinkClassifier, categorize
from kai.analysis.tabular import TabularClassifier, parse_line

__all__ = ["LinkClassifier", "TabularClassifier", "categorize", "parse_line"]
