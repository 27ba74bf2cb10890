"""HTTP surface for the external cron trigger."""
