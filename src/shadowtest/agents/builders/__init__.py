"""Builders that synthesize test code."""
