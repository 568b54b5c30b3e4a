"""Scheduling for backup jobs.

This package provides:
- Interval and daily-window timing helpers
- The single-threaded daemon loop
- Run-one / run-all / dry-run / check entry points with per-job reporting
"""
