"""
Constants
Centralised storage for pipeline step names, failure messages and the
degraded report text.
"""
# Checkpointed step names
STEP_ANALYZE = "analyze-repository"

# Failure messages recorded on the job
NO_FILES_MESSAGE = "No files found in repository"
UNKNOWN_ERROR_MESSAGE = "Unknown pipeline error"

# Degraded report
DEGRADED_VERDICT = "?"
DEGRADED_SUMMARY = (
    "The analysis engine could not produce a valid structured report for this "
    "repository after several attempts. Please retry the audit later."
)

# Target length of the security risk list
SECURITY_RISK_COUNT = 3

TRUNCATION_MARKER = "\n... [truncated]"
