"""Interactive console chat for the conductor runtime."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any, Callable, Dict, List

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

from conductorAgent.agent.turn_loop import TurnCallbacks
from conductorAgent.config.settings import get_settings
from conductorAgent.runtime.app import ConductorRuntime, build_application
from conductorAgent.utils.error_handler import ConductorError
from conductorAgent.utils.logging_utils import setup_logging
from conductorAgent.utils.message_utils import to_json_text, truncate

LOGGER = logging.getLogger(__name__)


class ConsoleApprovalGate:
    """Asks on the terminal before a capability runs."""

    async def __call__(self, correlation_id: str, function_name: str, arguments: Dict[str, Any]) -> bool:
        print(f"\n[approval] {function_name} wants to run with:")
        print(truncate(to_json_text(arguments, indent=2), 800))
        answer = await asyncio.to_thread(input, "Allow? [y/N] ")
        return answer.strip().lower() in {"y", "yes"}


class ConductorCLI:
    """Command routing plus a streaming chat loop."""

    COMMANDS: Dict[str, str] = {
        "/quit": "Exit",
        "/exit": "Exit",
        "/help": "Show this help",
        "/new": "Start a new conversation",
        "/tools <query>": "Search the capability registry",
        "/modules": "List the module catalog",
        "/reload": "Reload providers and rebuild the registry",
    }

    def __init__(self, runtime: ConductorRuntime) -> None:
        self.runtime = runtime
        self.history: List[BaseMessage] = []
        self.approval_gate = ConsoleApprovalGate()
        self._handlers: Dict[str, Callable[[str], bool]] = {
            "/quit": self._handle_quit,
            "/exit": self._handle_quit,
            "/help": self._handle_help,
            "/new": self._handle_new,
            "/tools": self._handle_tools,
            "/modules": self._handle_modules,
            "/reload": self._handle_reload,
        }

    async def run(self) -> None:
        self.print_welcome()
        while True:
            try:
                user_input = (await asyncio.to_thread(input, "\nYou> ")).strip()
            except (KeyboardInterrupt, EOFError):
                print("\nBye!")
                break
            if not user_input:
                continue
            if user_input.startswith("/"):
                if not self.handle_command(user_input):
                    break
                continue
            await self.handle_user_message(user_input)

    def print_welcome(self) -> None:
        print("Conductor ready. Type /help for commands.")
        if not self.runtime.has_model:
            print("Warning: no chat model configured (set MODEL_CHAT and MODEL_CHAT_API_KEY).")

    def handle_command(self, command_line: str) -> bool:
        name, _, argument = command_line.partition(" ")
        handler = self._handlers.get(name.lower())
        if handler is None:
            print(f"Unknown command: {name}. Type /help.")
            return True
        return handler(argument.strip())

    async def handle_user_message(self, text: str) -> None:
        cancel_event = asyncio.Event()
        printed_prefix = False

        def on_chunk(chunk: str) -> None:
            nonlocal printed_prefix
            if not printed_prefix:
                print("Agent> ", end="")
                printed_prefix = True
            print(chunk, end="", flush=True)

        def on_tool_call(call_id: str, name: str, args: Dict[str, Any]) -> None:
            print(f"\n[tool] {name} {truncate(to_json_text(args), 200, '...')}")

        def on_plan_step(step_id: str, description: str, status: str) -> None:
            print(f"\n[plan] {step_id} {status}: {description}")

        def on_error(message: str) -> None:
            print(f"\nError: {message}")

        callbacks = TurnCallbacks(
            on_chunk=on_chunk,
            on_tool_call=on_tool_call,
            on_plan_step=on_plan_step,
            on_error=on_error,
        )
        try:
            result = await self.runtime.chat_turn(
                self.history,
                text,
                callbacks=callbacks,
                approval_gate=self.approval_gate,
                cancel_event=cancel_event,
            )
        except asyncio.CancelledError:
            cancel_event.set()
            print("\n(cancelled)")
            raise

        if result.ok:
            print()
            self.history.extend([HumanMessage(content=text), AIMessage(content=result.text)])
            LOGGER.info(f"Turn usage: {result.usage.to_dict()}")

    def _handle_quit(self, argument: str) -> bool:
        print("Bye!")
        return False

    def _handle_help(self, argument: str) -> bool:
        for command, description in self.COMMANDS.items():
            print(f"  {command:<16} {description}")
        return True

    def _handle_new(self, argument: str) -> bool:
        self.history = []
        print("Started a new conversation.")
        return True

    def _handle_tools(self, argument: str) -> bool:
        if not argument:
            print("Usage: /tools <query>")
            return True
        hits = self.runtime.registry.search(argument)
        if not hits:
            print("No matching tools.")
        for hit in hits:
            print(f"  {hit.name} [{hit.category}] {hit.description}")
            for param in hit.params:
                print(f"      {param}")
        return True

    def _handle_modules(self, argument: str) -> bool:
        catalog = self.runtime.registry.format_module_catalog()
        print(catalog or "No modules available.")
        return True

    def _handle_reload(self, argument: str) -> bool:
        count = self.runtime.refresh_capabilities()
        print(f"Registry rebuilt: {count} routed functions.")
        return True


async def async_main() -> int:
    settings = get_settings()
    level = getattr(logging, settings.observability.log_level.upper(), logging.WARNING)
    setup_logging(level, settings.observability.log_dir)

    try:
        runtime = build_application(settings)
    except ConductorError as e:
        print(f"Configuration error: {e.user_message}")
        return 1

    await ConductorCLI(runtime).run()
    return 0


def main() -> None:
    sys.exit(asyncio.run(async_main()))
