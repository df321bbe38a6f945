"""
Background jobs module.
"""

from treniko.jobs.subscription_sweeper import SubscriptionSweeper, SweepStats, run_sweep

__all__ = [
    "SubscriptionSweeper",
    "SweepStats",
    "run_sweep",
]
