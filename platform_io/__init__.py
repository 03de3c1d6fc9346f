from platform_io.gateway import PlatformGateway, PollAnswerSnapshot, PollSnapshot
from platform_io.task_registry import DependencyRetry, RetryPolicy, SingletonTaskRegistry

__all__ = [
    "DependencyRetry",
    "PlatformGateway",
    "PollAnswerSnapshot",
    "PollSnapshot",
    "RetryPolicy",
    "SingletonTaskRegistry",
]
