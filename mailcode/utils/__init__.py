"""Utility modules for the authentication service."""
