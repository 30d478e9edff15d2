"""Bounded execute-validate-retry loop."""
