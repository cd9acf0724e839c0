"""Service task execution and the periodic queue worker."""
