"""Fraterna backend: member map, proximity alerts, friends and ephemeral chat."""
