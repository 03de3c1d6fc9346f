from __future__ import annotations

import re


_MENTION_PATTERN = re.compile(r"<@!?(\d+)>")
_MENTION_TOKEN_PATTERN = re.compile(r"^<@!?(\d+)>$")
_RANGE_PATTERN = re.compile(r"^(\d+)\s*[-–—]\s*(\d+)$")


def mention(user_id: int | str) -> str:
    return f"<@{user_id}>"


def channel_mention(channel_id: int | str) -> str:
    return f"<#{channel_id}>"


def parse_mention_ids(text: str) -> list[int]:
    """Return user ids mentioned in ``text`` in the order they appear, without duplicates."""
    out: list[int] = []
    for match in _MENTION_PATTERN.finditer(text or ""):
        user_id = int(match.group(1))
        if user_id not in out:
            out.append(user_id)
    return out


def parse_mention_token(token: str) -> int | None:
    match = _MENTION_TOKEN_PATTERN.match((token or "").strip())
    return int(match.group(1)) if match else None


def clean_rest(rest: str | None) -> str:
    return (rest or "").strip()


def split_tokens(rest: str | None) -> list[str]:
    return (rest or "").split()


def parse_min_max_range(token: str) -> tuple[int, int] | None:
    """Parse ``min-max`` (hyphen, en dash or em dash)."""
    match = _RANGE_PATTERN.match((token or "").strip())
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def truncate(text: str, limit: int) -> str:
    value = text or ""
    if len(value) <= limit:
        return value
    return f"{value[: max(0, limit - 3)]}..."


def chunk_lines(header: str, lines: list[str], *, limit: int = 1900) -> list[str]:
    """Pack ``lines`` under ``header`` into message-sized chunks."""
    chunks: list[str] = []
    current = header
    for line in lines:
        candidate = f"{current}\n{line}" if current else line
        if len(candidate) > limit and current:
            chunks.append(current)
            current = line
            continue
        current = candidate
    if current:
        chunks.append(current)
    return chunks
