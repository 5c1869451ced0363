"""Usage ledger core: active-time buckets, sessions, streaks and goal countdown."""

__version__ = "0.1.0"
