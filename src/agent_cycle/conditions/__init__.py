"""Composable termination conditions for improvement cycles."""
