"""Action data model shared by classifiers and the executor."""

from kai.actions.types import (
    CONFIRMATION_REQUIRED,
    ActionType,
    Attachment,
    DetectedAction,
    ExecutionResult,
    IntentContext,
    LinkAnalysisResult,
    LinkCategory,
    PendingAction,
    PlatformType,
    TabularAnalysisResult,
    requires_confirmation,
)

__all__ = [
    "CONFIRMATION_REQUIRED",
    "ActionType",
    "Attachment",
    "DetectedAction",
    "ExecutionResult",
    "IntentContext",
    "LinkAnalysisResult",
    "LinkCategory",
    "PendingAction",
    "PlatformType",
    "TabularAnalysisResult",
    "requires_confirmation",
]
