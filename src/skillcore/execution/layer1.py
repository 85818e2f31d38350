"""Layer 1: direct function calls.

Skills in layer 1 bind to a function registered by name. Invocation params
(an object) are mapped onto positional arguments in declared parameter order.
"""

import asyncio
import inspect
import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from skillcore.exceptions import FunctionNotFoundError
from skillcore.execution.models import ResourceUsage
from skillcore.skills.models import SkillDefinition

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass
class RegisteredFunction:
    """A function callable from layer 1 skills."""

    name: str
    func: Callable[..., Any]
    description: str = ""

    @property
    def is_async(self) -> bool:
        return inspect.iscoroutinefunction(self.func)


class FunctionRegistry:
    """Registry of named functions for layer 1 skills.

    Example:
        >>> functions = FunctionRegistry()
        >>> functions.register("add", lambda a, b: a + b)
        >>> await functions.call("add", [1, 2])
        3
    """

    def __init__(self) -> None:
        self._functions: dict[str, RegisteredFunction] = {}

    def register(
        self,
        name: str,
        func: Callable[..., Any],
        description: str = "",
        replace: bool = False,
    ) -> None:
        """Register a function under a name.

        Raises:
            ValueError: If the name is taken and replace is False
        """
        if name in self._functions and not replace:
            raise ValueError(f"Function '{name}' already registered")
        self._functions[name] = RegisteredFunction(name, func, description or (func.__doc__ or ""))
        logger.debug(f"Registered layer 1 function '{name}'")

    def unregister(self, name: str) -> None:
        """Remove a function.

        Raises:
            FunctionNotFoundError: If no function has that name
        """
        if name not in self._functions:
            raise FunctionNotFoundError(f"Function '{name}' not found", operation="unregister")
        del self._functions[name]

    def get(self, name: str) -> RegisteredFunction:
        """Look up a function.

        Raises:
            FunctionNotFoundError: If no function has that name
        """
        function = self._functions.get(name)
        if function is None:
            raise FunctionNotFoundError(
                f"Function '{name}' not found",
                operation="execute",
                suggestions=[f"Register '{name}' with FunctionRegistry.register()"],
            )
        return function

    def list_functions(self) -> list[str]:
        return sorted(self._functions)

    def __contains__(self, name: object) -> bool:
        return name in self._functions

    async def call(
        self, name: str, args: list[Any], usage: ResourceUsage | None = None
    ) -> Any:
        """Invoke a function with positional arguments.

        Synchronous functions run in a worker thread so that a timeout can
        still settle while they run.
        """
        function = self.get(name)

        if function.is_async:
            started = time.process_time()
            try:
                return await function.func(*args)
            finally:
                if usage is not None:
                    usage.cpu_time += (time.process_time() - started) * 1000

        def timed_call() -> Any:
            started = time.thread_time()
            try:
                return function.func(*args)
            finally:
                if usage is not None:
                    usage.cpu_time += (time.thread_time() - started) * 1000

        return await asyncio.to_thread(timed_call)


def map_parameters(skill: SkillDefinition, params: dict[str, Any]) -> list[Any]:
    """Map invocation params to positional arguments.

    Follows declared parameter order; absent parameters take their declared
    default. Trailing absent optional parameters are dropped so the
    function's own defaults apply. Without declared parameters the param
    values are passed in insertion order.

    Examples:
        >>> map_parameters(skill_with_params("a", "b"), {"b": 2, "a": 1})
        [1, 2]
    """
    if not skill.parameters:
        return list(params.values())

    args: list[Any] = []
    for param in skill.parameters:
        if param.name in params:
            args.append(params[param.name])
        elif param.default_value is not None:
            args.append(param.default_value)
        else:
            args.append(_MISSING)

    while args and args[-1] is _MISSING:
        args.pop()
    return [None if arg is _MISSING else arg for arg in args]


class Layer1Executor:
    """Executes layer 1 skills through a FunctionRegistry."""

    def __init__(self, functions: FunctionRegistry):
        self.functions = functions

    def function_name(self, skill: SkillDefinition) -> str:
        return skill.execution_context.function or skill.name

    async def execute(
        self, skill: SkillDefinition, params: dict[str, Any], usage: ResourceUsage
    ) -> Any:
        name = self.function_name(skill)
        args = map_parameters(skill, params)
        logger.debug(f"Layer 1 call {name}({len(args)} args) for skill '{skill.id}'")
        return await self.functions.call(name, args, usage)


# ============================================================================
# Built-in atomic functions
# ============================================================================


def _divide(a: float, b: float) -> float:
    if b == 0:
        raise ValueError("Division by zero")
    return a / b


def _split(text: str, delimiter: str | None = None) -> list[str]:
    return text.split(delimiter) if delimiter else text.split()


def _join(items: list[Any], delimiter: str = "") -> str:
    return delimiter.join(str(item) for item in items)


BUILTIN_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "add": lambda a, b: a + b,
    "subtract": lambda a, b: a - b,
    "multiply": lambda a, b: a * b,
    "divide": _divide,
    "concat": lambda *parts: "".join(str(part) for part in parts),
    "split": _split,
    "join": _join,
    "trim": lambda text: text.strip(),
    "lower": lambda text: text.lower(),
    "upper": lambda text: text.upper(),
    "length": lambda value: len(value),
    "parse_json": lambda text: json.loads(text),
    "stringify_json": lambda value, indent=None: json.dumps(value, indent=indent),
    "sort_list": lambda items, reverse=False: sorted(items, reverse=bool(reverse)),
    "unique": lambda items: list(dict.fromkeys(items)),
    "sum_list": lambda items: sum(items),
}


def register_builtin_functions(registry: FunctionRegistry, replace: bool = False) -> None:
    """Register the built-in arithmetic, string, JSON and list functions."""
    for name, func in BUILTIN_FUNCTIONS.items():
        if name in registry and not replace:
            continue
        registry.register(name, func, description=f"Built-in {name}", replace=replace)
