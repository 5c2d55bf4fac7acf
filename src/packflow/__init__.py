"""Packflow - dependency-aware execution of LLM agent team workflows."""

__version__ = "0.1.0"
