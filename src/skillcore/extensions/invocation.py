"""Application of an extension payload around a base skill call."""

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from skillcore.extensions.models import ExtensionType, SkillExtension

logger = logging.getLogger(__name__)

BaseCall = Callable[[dict[str, Any]], Awaitable[Any]]


def is_invocable(payload: Any) -> bool:
    return callable(payload)


async def call_payload(payload: Callable[..., Any], *args: Any) -> Any:
    """Call a sync or async payload."""
    result = payload(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


async def apply_extension(
    extension: SkillExtension | None, params: dict[str, Any], run_base: BaseCall
) -> Any:
    """Run the base call wrapped by the extension.

    - override: ``payload(params)`` replaces the base call
    - decorate: the base runs, then ``payload(output)`` is returned
    - hook: ``payload(params)`` runs, then the base
    - compose: ``{"base": output, "extension": payload(params)}``

    Non-invocable payloads leave the base call unchanged.
    """
    if extension is None:
        return await run_base(params)

    payload = extension.implementation
    if not is_invocable(payload):
        logger.debug(
            f"Extension '{extension.id}' payload is not invocable; running base skill unchanged"
        )
        return await run_base(params)

    logger.debug(f"Applying {extension.type.value} extension '{extension.id}'")
    if extension.type == ExtensionType.OVERRIDE:
        return await call_payload(payload, params)
    if extension.type == ExtensionType.DECORATE:
        output = await run_base(params)
        return await call_payload(payload, output)
    if extension.type == ExtensionType.HOOK:
        await call_payload(payload, params)
        return await run_base(params)

    output = await run_base(params)
    return {"base": output, "extension": await call_payload(payload, params)}
