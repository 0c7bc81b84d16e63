"""Membership verification quiz."""
