from __future__ import annotations

from typing import Any, Mapping

from commands.exposure import ChannelPolicy, ExposureMode, ExposureSettings, GuildExposure


DEFAULT_EXPOSURE = "bang"

# "bang" => only !cmd, "q" => only ?cmd, "off" => neither.
COMMAND_EXPOSURE_BY_GUILD: dict[str, dict[str, str]] = {
    # Unofficial server: collisions flipped to ?
    "880141088722141294": {
        "rarity.main": "q",
        "rarity.l4": "q",
        "rng.awesome": "q",
        "rng.choose": "q",
        "rng.roll": "q",
        "trading.ft": "q",
        "trading.id": "q",
        "trading.lf": "q",
    },
    # Official server
    "329934860388925442": {
        "rarity.main": "bang",
        "rng.choose": "bang",
        "rng.elim": "bang",
        "rng.roll": "bang",
        "trading.ft": "bang",
        "trading.id": "bang",
        "trading.lf": "bang",
    },
}

# Without a policy a command runs in every channel.
COMMAND_CHANNEL_POLICY_BY_GUILD: dict[str, dict[str, dict[str, Any]]] = {
    "329934860388925442": {
        "rng.awesome": {
            "allow": ["331114564966154240", "551243336187510784"],
            "silent": True,
        },
    },
}


class ExposureConfigError(ValueError):
    pass


def _parse_mode(raw: Any, where: str) -> ExposureMode:
    try:
        return ExposureMode(str(raw).strip().lower())
    except ValueError as exc:
        raise ExposureConfigError(f"Unknown exposure mode {raw!r} at {where}") from exc


def _parse_id(raw: Any, where: str) -> int:
    text = str(raw).strip()
    if not text.isdigit():
        raise ExposureConfigError(f"Invalid snowflake id {raw!r} at {where}")
    return int(text)


def _parse_id_set(raw: Any, where: str) -> frozenset[int]:
    if isinstance(raw, (str, bytes)) or not hasattr(raw, "__iter__"):
        raise ExposureConfigError(f"Expected a list of channel ids at {where}")
    return frozenset(_parse_id(value, where) for value in raw)


def _parse_policy(raw: Any, where: str) -> ChannelPolicy:
    if not isinstance(raw, Mapping):
        raise ExposureConfigError(f"Channel policy at {where} must be a mapping")
    unknown = set(raw) - {"allow", "deny", "silent", "notify"}
    if unknown:
        raise ExposureConfigError(f"Unknown channel policy keys at {where}: {', '.join(sorted(unknown))}")
    allow = _parse_id_set(raw["allow"], f"{where}.allow") if raw.get("allow") is not None else None
    deny = _parse_id_set(raw.get("deny") or (), f"{where}.deny")
    notify = raw.get("notify")
    return ChannelPolicy(
        allow=allow,
        deny=deny,
        silent=bool(raw.get("silent", False)),
        notify=str(notify) if notify else None,
    )


def load_exposure_settings(
    default: Any = DEFAULT_EXPOSURE,
    overrides: Mapping[Any, Mapping[str, Any]] | None = None,
    channel_policies: Mapping[Any, Mapping[str, Any]] | None = None,
) -> ExposureSettings:
    """Validates raw exposure tables into typed settings; raises ExposureConfigError."""
    overrides = COMMAND_EXPOSURE_BY_GUILD if overrides is None else overrides
    channel_policies = COMMAND_CHANNEL_POLICY_BY_GUILD if channel_policies is None else channel_policies

    modes_by_guild: dict[int, dict[str, ExposureMode]] = {}
    for raw_guild, modes in overrides.items():
        guild_id = _parse_id(raw_guild, "overrides")
        if not isinstance(modes, Mapping):
            raise ExposureConfigError(f"Exposure overrides for guild {raw_guild} must be a mapping")
        modes_by_guild[guild_id] = {
            str(logical_id): _parse_mode(mode, f"overrides[{raw_guild}][{logical_id}]")
            for logical_id, mode in modes.items()
        }

    policies_by_guild: dict[int, dict[str, ChannelPolicy]] = {}
    for raw_guild, policies in channel_policies.items():
        guild_id = _parse_id(raw_guild, "channel_policies")
        if not isinstance(policies, Mapping):
            raise ExposureConfigError(f"Channel policies for guild {raw_guild} must be a mapping")
        policies_by_guild[guild_id] = {
            str(logical_id): _parse_policy(policy, f"channel_policies[{raw_guild}][{logical_id}]")
            for logical_id, policy in policies.items()
        }

    guilds = {
        guild_id: GuildExposure(
            modes=modes_by_guild.get(guild_id, {}),
            channel_policies=policies_by_guild.get(guild_id, {}),
        )
        for guild_id in set(modes_by_guild) | set(policies_by_guild)
    }
    return ExposureSettings(default_mode=_parse_mode(default, "default"), guilds=guilds)
