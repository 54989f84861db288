"""Static validation passes applied to generated test code."""
