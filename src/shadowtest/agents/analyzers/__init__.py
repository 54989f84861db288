"""Analyzers that decide what to test."""
