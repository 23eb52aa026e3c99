"""Shared defaults for quality gate evaluation and persistence."""

CONFIGURATION_VERSION = "1.0"

# Scores at or above min_pass_rate * WARNING_BAND_RATIO (but below the pass
# bar) classify a gate as WARNING rather than FAIL.
WARNING_BAND_RATIO = 0.8

# Tolerated failures (at most max_failures) only lift a FAIL band to WARNING
# when the score is at least min_pass_rate * TALLY_WARNING_FLOOR_RATIO.
TALLY_WARNING_FLOOR_RATIO = 0.5

DEFAULT_HISTORY_LIMIT = 100

DEFAULT_STORAGE_ROOT = ".shipgate"

# Document keys, relative to the storage root
CONFIGURATION_KEY = "settings/quality-gates.json"
EXCEPTIONS_KEY = "settings/quality-gate-exceptions.json"
HISTORY_KEY = "reports/quality-gate-history.json"
REPORT_KEY_PREFIX = "reports/quality-gate-execution-"
