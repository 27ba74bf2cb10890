"""Scheduled jobs: cooldown sweep and batch enrichment."""
