"""Data models: adapter configuration, lifecycle states, network records."""
