"""Test runner adapters and the test executor."""
