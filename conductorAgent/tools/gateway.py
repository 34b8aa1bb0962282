"""Tool execution gateway.

Every capability invocation passes through ``ToolGateway``. The result is always
one of three shapes:

- the handler's return value
- ``{"denied": True, "message": ...}`` when the approval gate says no
- ``{"error": ...}`` for timeouts, handler exceptions and unknown functions
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from typing import Any, Dict, Mapping, Optional

from conductorAgent.capabilities.manifest import Handler
from conductorAgent.capabilities.registry import CapabilityRegistry
from conductorAgent.hitl.approval import ApprovalGate, ask_gate
from conductorAgent.utils.error_handler import describe_exception
from conductorAgent.utils.logging_utils import log_tool_call, log_tool_result
from conductorAgent.utils.message_utils import is_error_result

LOGGER = logging.getLogger(__name__)

DENIED_MESSAGE = "User denied tool execution"
DEFAULT_TOOL_TIMEOUT_SECONDS = 120.0
DEFAULT_APPROVAL_TIMEOUT_SECONDS = 120.0


def denied_result(message: str = DENIED_MESSAGE) -> Dict[str, Any]:
    return {"denied": True, "message": message}


def error_result(message: str) -> Dict[str, Any]:
    return {"error": message}


def timeout_message(name: str, timeout_seconds: float) -> str:
    return f'Tool "{name}" timed out after {timeout_seconds:g}s'


def _consume_late_outcome(task: asyncio.Future) -> None:
    if not task.cancelled() and task.exception() is not None:
        LOGGER.debug(f"Late failure from timed-out handler: {task.exception()}")


class ToolGateway:
    """Single choke point for capability invocations: approval, timeout, normalization."""

    def __init__(
        self,
        registry: Optional[CapabilityRegistry] = None,
        approval_gate: Optional[ApprovalGate] = None,
        *,
        timeout_seconds: float = DEFAULT_TOOL_TIMEOUT_SECONDS,
        approval_timeout_seconds: float = DEFAULT_APPROVAL_TIMEOUT_SECONDS,
    ) -> None:
        self.registry = registry
        self.approval_gate = approval_gate
        self.timeout_seconds = timeout_seconds
        self.approval_timeout_seconds = approval_timeout_seconds

    def with_gate(self, approval_gate: Optional[ApprovalGate]) -> "ToolGateway":
        """Same limits and registry, different approval gate (one per turn or channel)."""
        return ToolGateway(
            self.registry,
            approval_gate,
            timeout_seconds=self.timeout_seconds,
            approval_timeout_seconds=self.approval_timeout_seconds,
        )

    async def invoke(self, full_name: str, arguments: Optional[Dict[str, Any]] = None, call_id: Optional[str] = None) -> Any:
        """Invoke a registry function by composite name."""
        if self.registry is None:
            return error_result(f'Tool "{full_name}" is not available')
        try:
            lookup = self.registry.lookup(full_name)
        except Exception as e:
            LOGGER.error(f"Lookup of {full_name} failed: {type(e).__name__}: {e}")
            return error_result(f'Tool "{full_name}" is not available: {describe_exception(e)}')
        if lookup is None:
            LOGGER.warning(f"Invocation of unavailable function: {full_name}")
            return error_result(f'Tool "{full_name}" is not available')
        return await self.execute(
            full_name,
            lookup.handler,
            lookup.credentials,
            arguments,
            auto_allow=lookup.auto_allow,
            call_id=call_id,
        )

    async def execute(
        self,
        name: str,
        handler: Handler,
        credentials: Mapping[str, str],
        arguments: Optional[Dict[str, Any]] = None,
        *,
        auto_allow: bool = False,
        call_id: Optional[str] = None,
    ) -> Any:
        """Run one handler under the approval and timeout contract."""
        arguments = dict(arguments or {})
        call_id = call_id or uuid.uuid4().hex
        log_tool_call(LOGGER, name, arguments, call_id)

        if not auto_allow and self.approval_gate is not None:
            approved = await self._request_approval(call_id, name, arguments)
            if isinstance(approved, dict):
                log_tool_result(LOGGER, name, approved, success=False)
                return approved
            if not approved:
                LOGGER.info(f"Tool {name} denied by user [{call_id}]")
                result = denied_result()
                log_tool_result(LOGGER, name, result, success=False)
                return result

        result = await self._run_handler(name, handler, credentials, arguments)
        log_tool_result(LOGGER, name, result, success=not is_error_result(result))
        return result

    async def _request_approval(self, call_id: str, name: str, arguments: Dict[str, Any]) -> Any:
        try:
            return await asyncio.wait_for(
                ask_gate(self.approval_gate, call_id, name, arguments),
                timeout=self.approval_timeout_seconds,
            )
        except asyncio.TimeoutError:
            LOGGER.warning(f"Approval for {name} timed out after {self.approval_timeout_seconds:g}s [{call_id}]")
            return False
        except Exception as e:
            LOGGER.error(f"Approval gate failed for {name}: {e}")
            return error_result(f"Approval failed: {describe_exception(e)}")

    async def _run_handler(self, name: str, handler: Handler, credentials: Mapping[str, str], arguments: Dict[str, Any]) -> Any:
        creds = dict(credentials)
        if inspect.iscoroutinefunction(handler):
            task = asyncio.ensure_future(handler(arguments, creds))
        else:
            task = asyncio.ensure_future(self._call_sync(handler, arguments, creds))

        done, _ = await asyncio.wait({task}, timeout=self.timeout_seconds)
        if not done:
            # Cooperative cancel only; a worker thread keeps running until it returns.
            task.add_done_callback(_consume_late_outcome)
            task.cancel()
            message = timeout_message(name, self.timeout_seconds)
            LOGGER.warning(message)
            return error_result(message)

        try:
            return task.result()
        except Exception as e:
            LOGGER.error(f"Tool {name} failed: {type(e).__name__}: {e}")
            LOGGER.debug("Handler traceback", exc_info=e)
            return error_result(describe_exception(e))

    @staticmethod
    async def _call_sync(handler: Handler, arguments: Dict[str, Any], credentials: Dict[str, str]) -> Any:
        result = await asyncio.to_thread(handler, arguments, credentials)
        if inspect.isawaitable(result):
            result = await result
        return result
