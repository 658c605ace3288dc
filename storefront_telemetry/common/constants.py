TRACER_NAME = "storefront-telemetry"

SDK_PLATFORM = "python"

# Crash simulation: a roll in [0, 100) strictly above the threshold crashes the session.
CI_CRASH_PROBABILITY_THRESHOLD = 79
CI_CRASH_MIN_DELAY_MS = 20_000
CI_CRASH_DELAY_SPREAD_MS = 15_000
CI_CRASH_GRACE_PERIOD_MS = 500

# Exit status used when an injected fault terminates the process.
CRASH_EXIT_CODE = 70

NETWORK_ERROR_TYPE = "api_error"
