# backend/nakksha/core/constants.py
"""Application-wide constants."""

BRAND_NAME = "Nakksha"

DEFAULT_TIMEZONE = "Asia/Kolkata"

# "H:MM" or "HH:MM", 24-hour clock
TIME_PATTERN = r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$"

# Weekday numbering used by patterns and slots
SUNDAY = 0
SATURDAY = 6
DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")

# Job names tracked in the job status store
ROLLING_GENERATION_JOB = "rolling_slot_generation"
