"""Logging utilities for the conductor runtime."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

ROOT_LOGGER_NAME = "conductorAgent"
PREVIEW_LENGTH = 500

_global_logger: Optional[logging.Logger] = None


def _preview(value: Any, limit: int = PREVIEW_LENGTH) -> str:
    if isinstance(value, str):
        text = value
    else:
        try:
            text = json.dumps(value, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            text = str(value)
    if len(text) > limit:
        text = text[:limit] + "... (truncated)"
    return text


def setup_logging(
    level: int = logging.WARNING,
    log_dir: str | Path = "logs",
    *,
    file_logging: bool = True,
) -> logging.Logger:
    """Setup logging configuration for the runtime.

    Args:
        level: Console handler level (file handler always records DEBUG)
        log_dir: Directory for timestamped log files
        file_logging: Disable to log to the console only

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    logger.handlers = []

    if file_logging:
        logs_dir = Path(log_dir)
        logs_dir.mkdir(parents=True, exist_ok=True)
        log_file = logs_dir / f"conductor_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    logger.addHandler(console_handler)

    logger.info("=" * 80)
    logger.info("Conductor session started")
    if file_logging:
        logger.info(f"Log file: {log_file}")
    logger.info("=" * 80)

    global _global_logger
    _global_logger = logger
    return logger


def log_tool_call(logger: logging.Logger, tool_name: str, args: Dict[str, Any], call_id: Optional[str] = None) -> None:
    """Log capability invocation.

    Args:
        logger: Logger instance
        tool_name: Composite name of the capability
        args: Arguments as received from the model
        call_id: Correlation id of the call, when known
    """
    suffix = f" [{call_id}]" if call_id else ""
    logger.info(f"Tool call: {tool_name}{suffix}")
    logger.debug(f"  Arguments: {_preview(args)}")


def log_tool_result(logger: logging.Logger, tool_name: str, result: Any, success: bool = True) -> None:
    """Log capability result.

    Args:
        logger: Logger instance
        tool_name: Composite name of the capability
        result: Value returned to the model
        success: Whether the call produced a non-error result
    """
    status = "ok" if success else "failed"
    logger.info(f"Tool result: {tool_name} - {status}")
    logger.debug(f"  Result: {_preview(result)}")


def log_error(logger: logging.Logger, error: BaseException, context: str = "") -> None:
    """Log error with context and traceback."""
    logger.error(f"Error occurred: {type(error).__name__}: {error}")
    if context:
        logger.error(f"  Context: {context}")
    logger.debug("Full traceback:", exc_info=error)


def log_user_message(logger: logging.Logger, content: str) -> None:
    logger.info(f"User input: {content[:100]}{'...' if len(content) > 100 else ''}")


def log_agent_response(logger: logging.Logger, content: str) -> None:
    logger.info(f"Agent response: {content[:100]}{'...' if len(content) > 100 else ''}")


def log_prompt(logger: logging.Logger, phase: str, prompt: str, max_length: int = PREVIEW_LENGTH) -> None:
    """Log the system prompt used for a phase (turn, planner, step)."""
    logger.debug(f"System prompt for {phase}: {_preview(prompt, max_length)}")


def log_visible_tools(logger: logging.Logger, phase: str, tools: Iterable[Any]) -> None:
    """Log the capabilities offered to the model in a phase.

    Args:
        logger: Logger instance
        phase: Phase name (turn, step id, ...)
        tools: Capability objects or names
    """
    tool_names = [t.name if hasattr(t, "name") else str(t) for t in tools]
    logger.info(f"Visible tools for {phase}: [{', '.join(tool_names)}] ({len(tool_names)} total)")


def log_plan_created(logger: logging.Logger, request: str, steps: Iterable[Any]) -> None:
    """Log plan creation details.

    Args:
        logger: Logger instance
        request: Natural-language request the plan answers
        steps: PlanStep objects
    """
    steps = list(steps)
    logger.info("=" * 80)
    logger.info("Plan created:")
    logger.info(f"  Request: {request[:200]}")
    logger.info(f"  Total steps: {len(steps)}")
    for step in steps:
        target = f" module={step.module}" if getattr(step, "module", None) else ""
        deps = f" depends_on={list(step.depends_on)}" if getattr(step, "depends_on", None) else ""
        logger.info(f"  - {step.id} [{step.type}]{target}{deps}: {step.description}")
    logger.info("=" * 80)


def log_step_execution(logger: logging.Logger, step: Any, status: str, detail: str = "") -> None:
    """Log a plan step status change."""
    logger.info(f"Step {step.id} [{step.type}] {status}{': ' + detail if detail else ''}")


def get_logger() -> logging.Logger:
    """Get or create the global logger instance."""
    global _global_logger
    if _global_logger is None:
        _global_logger = setup_logging()
    return _global_logger
