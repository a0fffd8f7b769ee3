"""External-system adapters: weather forecasts and notification delivery."""
