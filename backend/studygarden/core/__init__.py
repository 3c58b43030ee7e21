"""Core utilities: settings, logging, errors, locking."""
