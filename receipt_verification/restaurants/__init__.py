"""Restaurants that receipts are verified against."""
