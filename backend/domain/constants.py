"""
Domain constants used across services/routers.
"""

# Timeout config bounds
PAYMENT_TIMEOUT_MINUTES_MIN = 1
PAYMENT_TIMEOUT_MINUTES_MAX = 1440  # 24 hours
PROCESSING_TIMEOUT_HOURS_MIN = 1
PROCESSING_TIMEOUT_HOURS_MAX = 720  # 30 days

# Scanner transition reasons
REASON_PAYMENT_TIMEOUT = "payment timeout"
REASON_PROCESSING_TIMEOUT = "processing timeout"
REASON_PROCESSING_AUTO_COMPLETE = "processing timeout auto-complete"

# Metadata keys written by the scanner
TIMEOUT_TYPE_PAYMENT = "payment_timeout"
TIMEOUT_TYPE_PROCESSING = "processing_timeout"

# Batch failure codes
FAILURE_TRANSITION = "transition"
FAILURE_NOT_FOUND = "not_found"
FAILURE_PERSISTENCE = "persistence"
