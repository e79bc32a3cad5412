"""Shared constants for ecrflow."""

# Artifact id recorded when an action completes without producing a report.
NEGATIVE_ARTIFACT_ID = "0"

DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_REDIS_JOBS_KEY = "ecrflow:jobs"
DEFAULT_ARTIFACT_EXTENSION = "xml"
DEFAULT_MAX_JOB_ATTEMPTS = 5
DEFAULT_RETRY_BASE = 2.0
