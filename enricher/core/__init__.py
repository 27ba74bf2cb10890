"""Core building blocks shared by the refresh jobs."""
