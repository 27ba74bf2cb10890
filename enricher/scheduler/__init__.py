"""APScheduler wiring for the periodic refresh jobs."""
