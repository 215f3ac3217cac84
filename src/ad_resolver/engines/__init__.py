# Author: Green Mountain Systems AI Inc.
# Donated to IAB Tech Lab

"""Resolution engines for VAST and VMAP documents."""

from .resolution_engine import AdResolutionEngine
from .break_scheduler import AdBreak, BreakScheduler, parse_break_position

__all__ = ["AdResolutionEngine", "AdBreak", "BreakScheduler", "parse_break_position"]
