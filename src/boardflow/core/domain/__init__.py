"""
Domain Models

This package contains the core domain models of the automation engine:
- Trigger contexts and their construction
- Automation rules, conditions and action declarations
- Execution logs and process summaries
- Configuration schema and error types
"""

from boardflow.core.domain.automation_log import (
    ActionOutcome,
    AutomationLog,
    LogStatus,
    OutcomeStatus,
    ProcessResult,
    RuleResult,
)
from boardflow.core.domain.automation_rule import (
    ActionSpec,
    ActionType,
    AutomationRule,
    Condition,
    ConditionOperator,
    TriggerFilter,
)
from boardflow.core.domain.context_builder import build_context
from boardflow.core.domain.trigger_context import TriggerContext, TriggerType

__all__ = [
    "ActionOutcome",
    "ActionSpec",
    "ActionType",
    "AutomationLog",
    "AutomationRule",
    "Condition",
    "ConditionOperator",
    "LogStatus",
    "OutcomeStatus",
    "ProcessResult",
    "RuleResult",
    "TriggerContext",
    "TriggerFilter",
    "TriggerType",
    "build_context",
]
