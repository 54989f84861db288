"""Build checking and the bounded repair loop."""
