"""Rule Store Protocol.

Defines the contract the dispatcher needs from whatever persists
automation rules: lookup plus the per-rule execution counter. Rule authoring (create/edit/validate) lives outside the
engine.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from boardflow.core.domain.automation_rule import AutomationRule
    from boardflow.core.domain.trigger_context import TriggerType


class RuleStoreProtocol(Protocol):
    """Protocol for rule lookup and execution counting."""

    async def active_rules_for_trigger(
        self, board_id: str, trigger_type: TriggerType
    ) -> list[AutomationRule]:
        """Return the active rules of a board listening to a trigger type.

        Args:
            board_id: Owning board.
            trigger_type: Trigger type to match.

        Returns:
            Active rules only, in stable creation order.
        """
        ...

    async def get_rule(self, rule_id: str) -> AutomationRule | None:
        """Retrieve a rule by ID, active or not.

        Args:
            rule_id: ID of the rule to retrieve.

        Returns:
            The rule if found, None otherwise.
        """
        ...

    async def record_execution(self, rule_id: str) -> None:
        """Count one real execution of a rule towards its max_executions cap."""
        ...
