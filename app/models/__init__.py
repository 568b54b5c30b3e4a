"""Data models for backup jobs and restic output."""
