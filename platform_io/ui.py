from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

import discord


BUTTON_STYLES = {
    "primary": discord.ButtonStyle.primary,
    "secondary": discord.ButtonStyle.secondary,
    "success": discord.ButtonStyle.success,
    "danger": discord.ButtonStyle.danger,
}


@dataclass(frozen=True, slots=True)
class ButtonSpec:
    label: str | None
    custom_id: str | None = None
    style: str = "primary"
    emoji: str | None = None
    disabled: bool = False
    row: int | None = None
    url: str | None = None


@dataclass(frozen=True, slots=True)
class ModalField:
    custom_id: str
    label: str
    paragraph: bool = False
    required: bool = True
    placeholder: str | None = None
    default: str | None = None
    max_length: int | None = None


def build_view(buttons: Iterable[ButtonSpec], *, per_row: int = 5) -> discord.ui.View:
    """A persistent view; clicks are routed by custom_id through the registry."""
    view = discord.ui.View(timeout=None)
    for index, spec in enumerate(buttons):
        style = discord.ButtonStyle.link if spec.url else BUTTON_STYLES.get(spec.style, discord.ButtonStyle.primary)
        view.add_item(
            discord.ui.Button(
                label=spec.label,
                custom_id=None if spec.url else spec.custom_id,
                url=spec.url,
                style=style,
                emoji=spec.emoji,
                disabled=spec.disabled,
                row=spec.row if spec.row is not None else min(4, index // per_row),
            )
        )
    return view


def build_select(custom_id: str, options: Iterable[tuple[str, str]], *, placeholder: str | None = None) -> discord.ui.View:
    view = discord.ui.View(timeout=None)
    select = discord.ui.Select(
        custom_id=custom_id,
        placeholder=placeholder,
        options=[discord.SelectOption(label=label[:100], value=value) for label, value in list(options)[:25]],
    )
    view.add_item(select)
    return view


def build_modal(title: str, custom_id: str, fields: Iterable[ModalField]) -> discord.ui.Modal:
    modal = discord.ui.Modal(title=title[:45], custom_id=custom_id, timeout=None)
    for spec in fields:
        modal.add_item(
            discord.ui.TextInput(
                label=spec.label[:45],
                custom_id=spec.custom_id,
                style=discord.TextStyle.paragraph if spec.paragraph else discord.TextStyle.short,
                required=spec.required,
                placeholder=spec.placeholder,
                default=spec.default,
                max_length=spec.max_length,
            )
        )
    return modal
