"""Execution lifecycle and improvement-cycle engine for LLM agents."""

__version__ = "0.1.0"
