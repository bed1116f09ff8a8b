"""tcm_checklist.middleware: Flask request hooks (logging, timing, rate limits)."""
