"""Core registries for skillrouter."""
