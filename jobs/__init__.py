"""Background jobs: dramatiq actors and the APScheduler driver."""
