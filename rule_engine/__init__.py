"""Driving event rule engine: trailing-window unsafe-event alerts per location type."""
