"""Human-in-the-Loop approval gating."""

from .approval import ApprovalBroker, ApprovalDecision, ApprovalGate, ApprovalRequest, ask_gate

__all__ = [
    "ApprovalBroker",
    "ApprovalDecision",
    "ApprovalGate",
    "ApprovalRequest",
    "ask_gate",
]
