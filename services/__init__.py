"""Auto-answer services: question reconciliation, scheduling and the facade."""
