"""Detectors that profile a project's test environment."""
