"""Shared utilities: subprocess execution, cancellation, path helpers."""
