"""Rule and log persistence implementations."""

from boardflow.infrastructure.persistence.file_log_store import FileLogStore
from boardflow.infrastructure.persistence.file_rule_store import FileRuleStore
from boardflow.infrastructure.persistence.memory_stores import InMemoryLogStore, InMemoryRuleStore

__all__ = ["FileLogStore", "FileRuleStore", "InMemoryLogStore", "InMemoryRuleStore"]
