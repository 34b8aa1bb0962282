"""Approval gate protocol.

An approval gate is any callable ``(correlation_id, function_name, arguments)``
returning a bool or an awaitable bool. ``ApprovalBroker`` is the gate used at a
channel boundary: the decision arrives later, from another task, through
``resolve()``.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

LOGGER = logging.getLogger(__name__)

ApprovalGate = Callable[[str, str, Dict[str, Any]], Union[bool, Awaitable[bool]]]

DEFAULT_CHANNEL_TIMEOUT_SECONDS = 300.0


@dataclass(frozen=True)
class ApprovalRequest:
    """A pending request shown to a human."""

    correlation_id: str
    function_name: str
    arguments: Dict[str, Any]
    created_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class ApprovalDecision:
    """Resolved outcome of a request."""

    correlation_id: str
    approved: bool
    reason: str = ""


async def ask_gate(gate: ApprovalGate, correlation_id: str, function_name: str, arguments: Dict[str, Any]) -> bool:
    """Call a gate that may answer synchronously or asynchronously."""
    decision = gate(correlation_id, function_name, arguments)
    if inspect.isawaitable(decision):
        decision = await decision
    return bool(decision)


class ApprovalBroker:
    """Pending-approvals map keyed by correlation id.

    ``on_request`` is notified of each new request (e.g. to render approve/deny
    buttons). Requests with no answer within ``timeout`` resolve to denied.
    """

    def __init__(
        self,
        on_request: Optional[Callable[[ApprovalRequest], Union[None, Awaitable[None]]]] = None,
        timeout: float = DEFAULT_CHANNEL_TIMEOUT_SECONDS,
    ) -> None:
        self.on_request = on_request
        self.timeout = timeout
        self._pending: Dict[str, asyncio.Future] = {}
        self._requests: Dict[str, ApprovalRequest] = {}
        self.history: List[ApprovalDecision] = []

    async def __call__(self, correlation_id: str, function_name: str, arguments: Dict[str, Any]) -> bool:
        return await self.request(correlation_id, function_name, arguments)

    async def request(self, correlation_id: str, function_name: str, arguments: Dict[str, Any]) -> bool:
        if correlation_id in self._pending:
            raise ValueError(f"Approval already pending for {correlation_id}")

        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        request = ApprovalRequest(correlation_id, function_name, dict(arguments or {}))
        self._pending[correlation_id] = future
        self._requests[correlation_id] = request
        LOGGER.info(f"Approval requested: {function_name} [{correlation_id}]")

        try:
            if self.on_request is not None:
                notified = self.on_request(request)
                if inspect.isawaitable(notified):
                    await notified
            approved = await asyncio.wait_for(future, timeout=self.timeout)
            reason = "approved" if approved else "denied"
        except asyncio.TimeoutError:
            LOGGER.warning(f"Approval timed out after {self.timeout:g}s: {function_name} [{correlation_id}]")
            approved = False
            reason = "timeout"
        finally:
            self._pending.pop(correlation_id, None)
            self._requests.pop(correlation_id, None)

        self.history.append(ApprovalDecision(correlation_id, approved, reason))
        return approved

    def resolve(self, correlation_id: str, approved: bool) -> bool:
        """Deliver a human decision. Returns False for unknown or already-settled ids."""
        future = self._pending.get(correlation_id)
        if future is None or future.done():
            LOGGER.debug(f"Ignoring decision for unknown approval {correlation_id}")
            return False
        future.set_result(bool(approved))
        return True

    def pending(self) -> List[ApprovalRequest]:
        return list(self._requests.values())

    def deny_all(self) -> int:
        """Deny every pending request (e.g. when the channel shuts down)."""
        count = 0
        for correlation_id in list(self._pending):
            if self.resolve(correlation_id, False):
                count += 1
        return count
