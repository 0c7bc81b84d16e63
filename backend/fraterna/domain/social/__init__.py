"""Friendships and the location allowlist."""
