"""Ephemeral global chat and the city emergency channel."""
