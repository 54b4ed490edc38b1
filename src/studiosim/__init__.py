"""
Studio Simulator - seeded synthetic telemetry for an ML platform.

Generates experiments, runs, metric series, logs, timelines, deployments and
inference traces from a single seed, serves them from an in-memory query
store, and streams live run events with simulated network failures.
"""

__version__ = "1.0.0"
