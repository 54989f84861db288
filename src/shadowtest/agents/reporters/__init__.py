"""Terminal and Markdown reporting for generation results."""
