"""Mila - HTTP API."""
