from services.game_sessions import (
    GameManager,
    GameSession,
    Scope,
    StartResult,
    TimerBag,
    can_manage,
    make_game_qol,
    require_active,
    require_can_manage,
    require_same_channel,
)

__all__ = [
    "GameManager",
    "GameSession",
    "Scope",
    "StartResult",
    "TimerBag",
    "can_manage",
    "make_game_qol",
    "require_active",
    "require_can_manage",
    "require_same_channel",
]
