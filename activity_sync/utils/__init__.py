"""Shared helpers for sync sessions."""
