from __future__ import annotations

import logging
from typing import Any


log = logging.getLogger("spectreon.platform")

_RESPONSE_ERRORS = {
    "InteractionResponded",
    "HTTPException",
    "NotFound",
    "Forbidden",
}


def _is_response_error(exc: Exception) -> bool:
    return exc.__class__.__name__ in _RESPONSE_ERRORS


def _log_failure(action: str, exc: Exception) -> None:
    if _is_response_error(exc):
        log.debug("%s failed: %s", action, exc.__class__.__name__)
        return
    log.warning("%s failed unexpectedly: %r", action, exc)


async def safe_reply(message: Any, content: str | None = None, **kwargs: Any) -> Any | None:
    """Reply to a message; returns the sent message or None."""
    reply = getattr(message, "reply", None)
    if reply is None:
        return None
    try:
        return await reply(content, **kwargs)
    except Exception as exc:  # pragma: no cover
        _log_failure("reply", exc)
        return None


async def safe_send(channel: Any, content: str | None = None, **kwargs: Any) -> Any | None:
    send = getattr(channel, "send", None)
    if send is None:
        return None
    try:
        return await send(content, **kwargs)
    except Exception as exc:  # pragma: no cover
        _log_failure("send", exc)
        return None


async def safe_dm(user: Any, content: str, **kwargs: Any) -> bool:
    """DM a user; closed DMs are an expected negative outcome."""
    send = getattr(user, "send", None)
    if send is None:
        return False
    try:
        await send(content, **kwargs)
        return True
    except Exception as exc:  # pragma: no cover
        _log_failure("dm", exc)
        return False


async def safe_defer(interaction: Any, *, ephemeral: bool = False) -> bool:
    response = getattr(interaction, "response", None)
    if response is None:
        return False
    is_done = getattr(response, "is_done", None)
    if callable(is_done) and is_done():
        return False

    try:
        await response.defer(ephemeral=ephemeral)
        return True
    except Exception as exc:  # pragma: no cover
        _log_failure("defer", exc)
        return False


async def safe_send_initial(
    interaction: Any,
    content: str | None = None,
    *,
    ephemeral: bool = False,
    **kwargs: Any,
) -> bool:
    response = getattr(interaction, "response", None)
    if response is None:
        return False

    is_done = getattr(response, "is_done", None)
    done = callable(is_done) and is_done()
    if done:
        return await safe_followup(interaction, content, ephemeral=ephemeral, **kwargs)

    try:
        await response.send_message(content, ephemeral=ephemeral, **kwargs)
        return True
    except Exception as exc:  # pragma: no cover
        if not _is_response_error(exc):
            _log_failure("send_message", exc)
            return False
        return await safe_followup(interaction, content, ephemeral=ephemeral, **kwargs)


async def safe_followup(interaction: Any, content: str | None = None, *, ephemeral: bool = False, **kwargs: Any) -> bool:
    followup = getattr(interaction, "followup", None)
    if followup is None:
        return False

    try:
        await followup.send(content, ephemeral=ephemeral, **kwargs)
        return True
    except Exception as exc:  # pragma: no cover
        _log_failure("followup", exc)
        return False


async def safe_send_modal(interaction: Any, modal: Any) -> bool:
    response = getattr(interaction, "response", None)
    if response is None:
        return False
    try:
        await response.send_modal(modal)
        return True
    except Exception as exc:  # pragma: no cover
        _log_failure("send_modal", exc)
        return False


async def safe_autocomplete(interaction: Any, choices: list[Any]) -> bool:
    response = getattr(interaction, "response", None)
    if response is None:
        return False
    try:
        await response.autocomplete(choices)
        return True
    except Exception as exc:  # pragma: no cover
        _log_failure("autocomplete", exc)
        return False


async def safe_edit_message(message: Any, **kwargs: Any) -> bool:
    try:
        await message.edit(**kwargs)
        return True
    except Exception as exc:  # pragma: no cover
        _log_failure("edit", exc)
        return False

