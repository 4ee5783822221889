"""Shared utilities for configuration, errors, and structured logging."""
