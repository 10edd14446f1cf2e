"""Shared helpers for the concertsync engine."""
