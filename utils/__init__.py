from utils.text import (
    channel_mention,
    chunk_lines,
    clean_rest,
    mention,
    parse_mention_ids,
    parse_mention_token,
    parse_min_max_range,
    plural,
    split_tokens,
    truncate,
)
from utils.time_utils import discord_timestamp, format_time_left, parse_duration_seconds, parse_relative_delay

__all__ = [
    "channel_mention",
    "chunk_lines",
    "clean_rest",
    "discord_timestamp",
    "format_time_left",
    "mention",
    "parse_duration_seconds",
    "parse_mention_ids",
    "parse_mention_token",
    "parse_min_max_range",
    "parse_relative_delay",
    "plural",
    "split_tokens",
    "truncate",
]
