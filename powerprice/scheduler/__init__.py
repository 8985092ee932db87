"""
Scheduler package for the power price alert service.
Contains the asyncio background job scheduler.
"""

from .simple_scheduler import PriceScheduler, ScheduledJob

__all__ = [
    "PriceScheduler",
    "ScheduledJob",
]
