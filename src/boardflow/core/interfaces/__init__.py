"""
Core Protocol Interfaces

Contracts between the engine and everything it does not own: where rules
and logs live, and who performs the mutations actions request.

Available Protocols:
    - RuleStoreProtocol: Active rule lookup
    - LogStoreProtocol: Append-only execution logs
    - TaskServiceProtocol: Task mutations
    - WebhookSenderProtocol: Outgoing webhooks
    - NotifierProtocol: In-app notifications
"""

from boardflow.core.interfaces.collaborators import (
    NotifierProtocol,
    TaskServiceProtocol,
    WebhookSenderProtocol,
)
from boardflow.core.interfaces.log_store import LogStoreProtocol
from boardflow.core.interfaces.rule_store import RuleStoreProtocol

__all__ = [
    "LogStoreProtocol",
    "NotifierProtocol",
    "RuleStoreProtocol",
    "TaskServiceProtocol",
    "WebhookSenderProtocol",
]
