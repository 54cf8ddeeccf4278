"""Browser-facing layer: automation surface, waits, detection and session setup."""
