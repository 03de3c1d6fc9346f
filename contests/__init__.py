from contests.giveaway import GiveawayService
from contests.lotto import LottoTracker
from contests.poll_contest import PollContestService
from contests.rng import RngCommands
from contests.scheduled_commands import ScheduledCommandService

__all__ = [
    "GiveawayService",
    "LottoTracker",
    "PollContestService",
    "RngCommands",
    "ScheduledCommandService",
]
