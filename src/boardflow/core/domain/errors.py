"""Domain-specific exception types for the automation engine.

Two kinds of errors exist. ``MalformedContext`` and ``TriggerAbortedTransient``
abort a whole ``process`` call and reach the caller. Everything below the
rule level (invalid definitions, action failures, chain limits) is captured
into execution logs and never propagates.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict


@dataclass
class BoardflowError(Exception):
    """Base exception for boardflow domain errors."""

    message: str
    code: str = "boardflow_error"
    details: Dict[str, Any] | None = None

    def __post_init__(self) -> None:
        super().__init__(self.message)
        if self.details is None:
            self.details = {}

    @property
    def kind(self) -> str:
        """Error kind as recorded in action outcomes and logs."""
        return type(self).__name__


class MalformedContext(BoardflowError):
    """Required trigger context fields are missing or have the wrong shape."""

    def __init__(self, message: str, *, details: Dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="malformed_context", details=details)


class TriggerAbortedTransient(BoardflowError):
    """The rule store was unavailable; the whole trigger may be retried."""

    def __init__(self, message: str, *, details: Dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="trigger_aborted_transient", details=details)


class InvalidRuleDefinition(BoardflowError):
    """A rule uses an unrecognized condition operator or action type."""

    def __init__(
        self,
        message: str,
        *,
        rule_id: str | None = None,
        details: Dict[str, Any] | None = None,
    ) -> None:
        details = dict(details or {})
        if rule_id:
            details.setdefault("rule_id", rule_id)
        self.rule_id = rule_id
        super().__init__(message=message, code="invalid_rule_definition", details=details)


class ActionFailure(BoardflowError):
    """A single action could not be applied.

    Collaborators raise one of the subclasses to report a typed failure.
    """

    def __init__(
        self,
        message: str,
        *,
        action_type: str | None = None,
        code: str = "action_failure",
        details: Dict[str, Any] | None = None,
    ) -> None:
        details = dict(details or {})
        if action_type:
            details.setdefault("action_type", action_type)
        self.action_type = action_type
        super().__init__(message=message, code=code, details=details)


class ActionConflict(ActionFailure):
    """The task store rejected a write that raced with another mutation."""

    def __init__(
        self,
        message: str,
        *,
        action_type: str | None = None,
        details: Dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message, action_type=action_type, code="action_conflict", details=details
        )


class InvalidActionParameters(ActionFailure):
    """Action parameters are structurally invalid at execution time."""

    def __init__(
        self,
        message: str,
        *,
        action_type: str | None = None,
        details: Dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            action_type=action_type,
            code="invalid_action_parameters",
            details=details,
        )


class CollaboratorUnavailable(ActionFailure):
    """The mutation collaborator could not be reached."""

    def __init__(
        self,
        message: str,
        *,
        action_type: str | None = None,
        details: Dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            action_type=action_type,
            code="collaborator_unavailable",
            details=details,
        )


class MaxRecursionDepthExceeded(BoardflowError):
    """A chained trigger would exceed the configured recursion depth."""

    def __init__(self, message: str, *, depth: int, max_depth: int) -> None:
        self.depth = depth
        self.max_depth = max_depth
        super().__init__(
            message=message,
            code="max_recursion_depth_exceeded",
            details={"depth": depth, "max_depth": max_depth},
        )


class RuleNotFoundError(BoardflowError):
    """Error raised when a rule id does not resolve to a stored rule."""

    def __init__(self, rule_id: str) -> None:
        self.rule_id = rule_id
        super().__init__(
            message=f"Rule not found: {rule_id}",
            code="rule_not_found",
            details={"rule_id": rule_id},
        )


class LogFinalizedError(BoardflowError):
    """An execution log handle was used after it was finalized."""

    def __init__(self, log_id: str) -> None:
        super().__init__(
            message=f"Automation log already finalized: {log_id}",
            code="log_finalized",
            details={"log_id": log_id},
        )


class ConfigError(BoardflowError):
    """Error raised for configuration failures."""

    def __init__(self, message: str, *, details: Dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="config_error", details=details)
