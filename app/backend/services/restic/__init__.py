"""Restic job execution.

This package provides:
- Backend resolution (repository URL and credential environment)
- Streaming execution of `restic backup` with output classification
- Per-run scratch workspaces and pre/post hooks
- The per-job runtime that tracks last/next run
"""
