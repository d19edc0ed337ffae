"""Traffic sensor ingestion, safety scoring and planner insights."""

__version__ = "1.0.0"
