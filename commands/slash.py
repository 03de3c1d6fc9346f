from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from discord import AppCommandOptionType


MAX_CHOICES = 25


def _option(kind: AppCommandOptionType, name: str, description: str, *, required: bool = False, **extra: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "type": kind.value,
        "name": name,
        "description": description,
        "required": required,
    }
    payload.update({key: value for key, value in extra.items() if value is not None})
    return payload


def slash_command(name: str, description: str, options: Iterable[dict[str, Any]] = (), *, dm_permission: bool = False) -> dict[str, Any]:
    return {
        "type": 1,
        "name": name,
        "description": description,
        "options": list(options),
        "dm_permission": dm_permission,
    }


def subcommand(name: str, description: str, options: Iterable[dict[str, Any]] = ()) -> dict[str, Any]:
    return {
        "type": AppCommandOptionType.subcommand.value,
        "name": name,
        "description": description,
        "options": list(options),
    }


def string_option(
    name: str,
    description: str,
    *,
    required: bool = False,
    autocomplete: bool | None = None,
    max_length: int | None = None,
    choices: Iterable[tuple[str, str]] | None = None,
) -> dict[str, Any]:
    choice_payload = [{"name": label, "value": value} for label, value in choices] if choices else None
    return _option(
        AppCommandOptionType.string,
        name,
        description,
        required=required,
        autocomplete=autocomplete,
        max_length=max_length,
        choices=choice_payload,
    )


def integer_option(
    name: str,
    description: str,
    *,
    required: bool = False,
    min_value: int | None = None,
    max_value: int | None = None,
) -> dict[str, Any]:
    return _option(AppCommandOptionType.integer, name, description, required=required, min_value=min_value, max_value=max_value)


def boolean_option(name: str, description: str, *, required: bool = False) -> dict[str, Any]:
    return _option(AppCommandOptionType.boolean, name, description, required=required)


def user_option(name: str, description: str, *, required: bool = False) -> dict[str, Any]:
    return _option(AppCommandOptionType.user, name, description, required=required)


@dataclass(slots=True)
class ParsedOptions:
    subcommand: str | None = None
    values: dict[str, Any] = field(default_factory=dict)
    focused: str | None = None
    focused_value: str = ""


def _coerce(option: dict[str, Any]) -> Any:
    value = option.get("value")
    kind = option.get("type")
    if kind in {AppCommandOptionType.user.value, AppCommandOptionType.channel.value} and value is not None:
        try:
            return int(value)
        except (TypeError, ValueError):
            return value
    return value


def read_options(data: dict[str, Any] | None) -> ParsedOptions:
    """Flattens an application command payload into subcommand + option values."""
    parsed = ParsedOptions()
    options = list((data or {}).get("options") or [])
    group_kinds = {AppCommandOptionType.subcommand.value, AppCommandOptionType.subcommand_group.value}
    while len(options) == 1 and options[0].get("type") in group_kinds:
        parsed.subcommand = str(options[0].get("name"))
        options = list(options[0].get("options") or [])

    for option in options:
        name = str(option.get("name"))
        parsed.values[name] = _coerce(option)
        if option.get("focused"):
            parsed.focused = name
            parsed.focused_value = str(option.get("value") or "")
    return parsed
