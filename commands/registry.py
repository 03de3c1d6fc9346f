from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable

from discord import app_commands

from commands.context import ActorContext, CommandContext, ComponentContext, SlashContext
from commands.exposure import ExposureMode, ExposurePolicy
from commands.slash import MAX_CHOICES, read_options
from platform_io.safety import safe_autocomplete, safe_send_initial
from utils.text import chunk_lines


log = logging.getLogger("spectreon.registry")

UNKNOWN_COMMAND = "unknown_command"
WRONG_PREFIX = "wrong_prefix"
EXPOSURE_OFF = "exposure_off"
CHANNEL_BLOCKED = "channel_blocked"
FORBIDDEN = "forbidden"
HANDLER_ERROR = "handler_error"
IGNORED = "ignored"

COMMAND_PREFIXES = ("!", "?")
HANDLER_ERROR_TEXT = "⚠️ Something went wrong running that command."
PERMISSION_DENIED_TEXT = "❌ You do not have permission to use this command."

TextHandler = Callable[[CommandContext], Awaitable[None]]
SlashHandler = Callable[[SlashContext], Awaitable[None]]
ComponentHandler = Callable[[ComponentContext], Awaitable[None]]
AutocompleteHandler = Callable[[SlashContext, str, str], Awaitable[Iterable[Any]]]
Listener = Callable[[Any, ActorContext], Any]


class CommandConfigError(ValueError):
    pass


class DuplicateComponentPrefixError(CommandConfigError):
    pass


@dataclass(slots=True)
class TextCommand:
    name: str
    handler: TextHandler
    help: str = ""
    category: str = "General"
    admin: bool = False
    hide_from_help: bool = False
    help_tier: str = "secondary"
    logical_id: str | None = None
    aliases: tuple[str, ...] = ()

    @property
    def exposed(self) -> bool:
        return self.logical_id is not None


@dataclass(slots=True)
class SlashCommand:
    name: str
    definition: dict[str, Any]
    handler: SlashHandler
    autocomplete: AutocompleteHandler | None = None
    admin: bool = False


@dataclass(frozen=True, slots=True)
class DispatchResult:
    ok: bool
    reason: str | None = None
    canonical_cmd: str | None = None
    expose_logical_id: str | None = None
    notify_text: str | None = None


@dataclass(slots=True)
class _ParsedMessage:
    token: str
    prefix: str
    name: str
    rest: str


def parse_command_text(content: str) -> _ParsedMessage | None:
    text = (content or "").strip()
    if len(text) < 2 or text[0] not in COMMAND_PREFIXES:
        return None
    parts = text.split(None, 1)
    token = parts[0]
    rest = parts[1] if len(parts) > 1 else ""
    return _ParsedMessage(token=token, prefix=token[0], name=token[1:].lower(), rest=rest)


class Registrar:
    """The ``register`` object handed to every feature module."""

    def __init__(self, registry: "CommandRegistry") -> None:
        self._registry = registry

    def __call__(
        self,
        name: str,
        handler: TextHandler,
        help_text: str = "",
        *,
        aliases: Iterable[str] = (),
        admin: bool = False,
        hide_from_help: bool = False,
        category: str = "General",
        help_tier: str = "secondary",
    ) -> TextCommand:
        command = TextCommand(
            name=name.lower(),
            handler=handler,
            help=help_text,
            category=category,
            admin=admin,
            hide_from_help=hide_from_help,
            help_tier=help_tier,
            aliases=tuple(alias.lower() for alias in aliases),
        )
        self._registry._add_plain(command)
        return command

    def expose(
        self,
        *,
        logical_id: str,
        name: str,
        handler: TextHandler,
        help: str = "",
        aliases: Iterable[str] = (),
        admin: bool = False,
        hide_from_help: bool = False,
        category: str = "General",
        help_tier: str = "secondary",
    ) -> TextCommand:
        command = TextCommand(
            name=name.lower().lstrip("!?"),
            handler=handler,
            help=help,
            category=category,
            admin=admin,
            hide_from_help=hide_from_help,
            help_tier=help_tier,
            logical_id=logical_id,
            aliases=tuple(alias.lower().lstrip("!?") for alias in aliases),
        )
        self._registry._add_exposed(command)
        return command

    def slash(
        self,
        definition: dict[str, Any],
        handler: SlashHandler,
        *,
        autocomplete: AutocompleteHandler | None = None,
        admin: bool = False,
    ) -> SlashCommand:
        command = SlashCommand(
            name=str(definition["name"]),
            definition=definition,
            handler=handler,
            autocomplete=autocomplete,
            admin=admin,
        )
        self._registry._add_slash(command)
        return command

    def component(self, prefix: str, handler: ComponentHandler) -> None:
        self._registry._add_component(prefix, handler)

    def listener(self, fn: Listener) -> None:
        self._registry._listeners.append(fn)


class CommandRegistry:
    def __init__(self, exposure: ExposurePolicy | None = None, *, help_header: str = "**Available commands:**") -> None:
        self.exposure = exposure or ExposurePolicy()
        self.help_header = help_header
        self._plain: dict[str, TextCommand] = {}
        self._exposed: dict[str, TextCommand] = {}
        self._slash: dict[str, SlashCommand] = {}
        self._components: dict[str, ComponentHandler] = {}
        self._listeners: list[Listener] = []
        self._commands: list[TextCommand] = []
        self.register = Registrar(self)
        self.register("!help", self._help_command, "!help — shows this help message", category="Info", help_tier="primary")

    # registration

    def _claim_name(self, key: str, table: dict[str, TextCommand], command: TextCommand) -> None:
        if key in table:
            raise CommandConfigError(f"Duplicate command name: {key}")
        table[key] = command

    def _add_plain(self, command: TextCommand) -> None:
        for key in (command.name, *command.aliases):
            if key[:1] not in COMMAND_PREFIXES:
                raise CommandConfigError(f"Command name must start with ! or ?: {key}")
            if key[1:] in self._exposed:
                raise CommandConfigError(f"Command name collides with exposed command: {key}")
            self._claim_name(key, self._plain, command)
        self._commands.append(command)

    def _add_exposed(self, command: TextCommand) -> None:
        for key in (command.name, *command.aliases):
            if f"!{key}" in self._plain or f"?{key}" in self._plain:
                raise CommandConfigError(f"Exposed name collides with plain command: {key}")
            self._claim_name(key, self._exposed, command)
        self._commands.append(command)

    def _add_slash(self, command: SlashCommand) -> None:
        if command.name in self._slash:
            raise CommandConfigError(f"Duplicate slash command: {command.name}")
        self._slash[command.name] = command

    def _add_component(self, prefix: str, handler: ComponentHandler) -> None:
        if not prefix:
            raise CommandConfigError("Component prefix must not be empty")
        if prefix in self._components:
            raise DuplicateComponentPrefixError(f"Duplicate component prefix: {prefix}")
        self._components[prefix] = handler

    # lookups

    def commands(self) -> list[TextCommand]:
        return list(self._commands)

    def slash_names(self) -> list[str]:
        return sorted(self._slash)

    def slash_definitions(self) -> list[dict[str, Any]]:
        return [dict(command.definition) for command in self._slash.values()]

    def component_prefixes(self) -> list[str]:
        return sorted(self._components)

    def resolve_component(self, custom_id: str) -> tuple[str, ComponentHandler] | None:
        best: str | None = None
        for prefix in self._components:
            if custom_id.startswith(prefix) and (best is None or len(prefix) > len(best)):
                best = prefix
        if best is None:
            return None
        return best, self._components[best]

    # text dispatch

    async def _run_listeners(self, message: Any, actor: ActorContext) -> None:
        for listener in self._listeners:
            try:
                result = listener(message, actor)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                log.exception("Message listener failed")

    async def dispatch_message(self, message: Any, actor: ActorContext, *, dry_run: bool = False) -> DispatchResult:
        """Routes a text message to at most one handler.

        With ``dry_run`` only the routing checks run: no listeners, no
        replies, no handler.
        """
        if not dry_run:
            await self._run_listeners(message, actor)

        parsed = parse_command_text(getattr(message, "content", "") or "")
        if parsed is None:
            return DispatchResult(False, IGNORED)

        command = self._plain.get(parsed.token.lower())
        canonical = parsed.token.lower()
        decision = None
        if command is None:
            command = self._exposed.get(parsed.name)
            if command is None:
                return DispatchResult(False, UNKNOWN_COMMAND)

            decision = self.exposure.decide(actor.guild_id, command.logical_id, actor.channel_id)
            logical_id = command.logical_id
            if decision.mode is ExposureMode.OFF:
                return DispatchResult(False, EXPOSURE_OFF, expose_logical_id=logical_id)
            canonical = f"{decision.mode.prefix}{command.name}"
            if parsed.prefix != decision.mode.prefix:
                return DispatchResult(False, WRONG_PREFIX, canonical, logical_id)
            if not decision.channel_allowed:
                blocked = decision.blocked_text()
                if blocked and not dry_run:
                    await CommandContext(message, parsed.rest, parsed.token, actor, self).reply(blocked)
                return DispatchResult(False, CHANNEL_BLOCKED, canonical, logical_id, decision.notify_text)

        ctx = CommandContext(message=message, rest=parsed.rest, cmd=parsed.token, actor=actor, registry=self)
        if command.admin and not actor.is_admin_or_privileged:
            if not dry_run:
                await ctx.reply(PERMISSION_DENIED_TEXT)
            return DispatchResult(False, FORBIDDEN, canonical, command.logical_id)

        if dry_run:
            return DispatchResult(True, None, canonical, command.logical_id)

        try:
            await command.handler(ctx)
        except Exception:
            log.exception("Command handler failed cmd=%s guild=%s channel=%s", canonical, actor.guild_id, actor.channel_id)
            await ctx.reply(HANDLER_ERROR_TEXT)
            return DispatchResult(False, HANDLER_ERROR, canonical, command.logical_id)
        return DispatchResult(True, None, canonical, command.logical_id)

    # interactions

    async def dispatch_slash(self, interaction: Any, actor: ActorContext) -> DispatchResult:
        data = getattr(interaction, "data", None) or {}
        name = str(data.get("name") or "")
        command = self._slash.get(name)
        if command is None:
            log.warning("Unknown slash command: %s", name)
            return DispatchResult(False, UNKNOWN_COMMAND)

        parsed = read_options(data)
        ctx = SlashContext(interaction=interaction, actor=actor, options=parsed.values, subcommand=parsed.subcommand, registry=self)
        # Privileges are re-read per invocation.
        if command.admin and not actor.is_admin_or_privileged:
            await ctx.reply(PERMISSION_DENIED_TEXT, ephemeral=True)
            return DispatchResult(False, FORBIDDEN, f"/{name}")

        try:
            await command.handler(ctx)
        except Exception:
            log.exception("Slash handler failed name=%s sub=%s guild=%s", name, parsed.subcommand, actor.guild_id)
            await ctx.reply(HANDLER_ERROR_TEXT, ephemeral=True)
            return DispatchResult(False, HANDLER_ERROR, f"/{name}")
        return DispatchResult(True, None, f"/{name}")

    async def dispatch_autocomplete(self, interaction: Any, actor: ActorContext) -> list[app_commands.Choice]:
        data = getattr(interaction, "data", None) or {}
        command = self._slash.get(str(data.get("name") or ""))
        choices: list[app_commands.Choice] = []
        if command is not None and command.autocomplete is not None:
            if not command.admin or actor.is_admin_or_privileged:
                parsed = read_options(data)
                ctx = SlashContext(interaction=interaction, actor=actor, options=parsed.values, subcommand=parsed.subcommand, registry=self)
                try:
                    raw = await command.autocomplete(ctx, parsed.focused or "", parsed.focused_value)
                    choices = [_to_choice(item) for item in raw][:MAX_CHOICES]
                except Exception:
                    log.exception("Autocomplete failed name=%s", command.name)
                    choices = []
        await safe_autocomplete(interaction, choices)
        return choices

    async def dispatch_component(self, interaction: Any, actor: ActorContext) -> DispatchResult:
        ctx = ComponentContext.from_interaction(interaction, actor, self)
        resolved = self.resolve_component(ctx.custom_id)
        if resolved is None:
            log.debug("No component handler for custom_id=%s", ctx.custom_id)
            return DispatchResult(False, UNKNOWN_COMMAND)
        prefix, handler = resolved
        try:
            await handler(ctx)
        except Exception:
            log.exception("Component handler failed prefix=%s custom_id=%s", prefix, ctx.custom_id)
            await ctx.reply(HANDLER_ERROR_TEXT, ephemeral=True)
            return DispatchResult(False, HANDLER_ERROR, prefix)
        return DispatchResult(True, None, prefix)

    # help

    def help_lines(self, actor: ActorContext) -> list[str]:
        grouped: dict[str, list[tuple[int, str]]] = {}
        for command in self._commands:
            if not command.help or command.hide_from_help:
                continue
            if command.admin and not actor.is_admin_or_privileged:
                continue
            text = command.help
            if command.exposed:
                mode = self.exposure.mode_for(actor.guild_id, command.logical_id)
                if mode is ExposureMode.OFF:
                    continue
                if text.startswith("!"):
                    text = f"{mode.prefix}{text[1:]}"
            tier = 0 if command.help_tier == "primary" else 1
            grouped.setdefault(command.category, []).append((tier, text))

        lines: list[str] = []
        for category in sorted(grouped):
            lines.append(f"__{category}__")
            lines.extend(f"• {text}" for _, text in sorted(grouped[category]))
        return lines

    async def _help_command(self, ctx: CommandContext) -> None:
        lines = self.help_lines(ctx.actor)
        if not lines:
            return
        chunks = chunk_lines(self.help_header, lines)
        await ctx.reply(chunks[0])
        for chunk in chunks[1:]:
            await ctx.send(chunk)


def _to_choice(item: Any) -> app_commands.Choice:
    if isinstance(item, app_commands.Choice):
        return item
    if isinstance(item, tuple):
        name, value = item
        return app_commands.Choice(name=str(name)[:100], value=str(value))
    return app_commands.Choice(name=str(item)[:100], value=str(item))
