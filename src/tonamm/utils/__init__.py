"""Utility modules for tonamm."""

from tonamm.utils.locks import AccountGuard
from tonamm.utils.polling import PollPolicy, PollResult, await_predicate

__all__ = ["AccountGuard", "PollPolicy", "PollResult", "await_predicate"]
