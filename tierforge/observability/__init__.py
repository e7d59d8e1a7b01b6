"""Logging and metrics for tierforge."""
