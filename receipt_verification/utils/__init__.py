"""Utility functions shared by the receipt verification services."""
