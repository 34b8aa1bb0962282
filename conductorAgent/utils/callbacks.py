"""Invoke optional observer callbacks that may be sync or async."""

from __future__ import annotations

import inspect
from typing import Any, Callable, Optional


async def emit(callback: Optional[Callable[..., Any]], *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result
