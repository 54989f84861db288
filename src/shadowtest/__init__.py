"""shadowtest — LLM-driven unit test synthesis, validation and execution."""

__version__ = "0.1.0"
