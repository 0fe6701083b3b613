"""Domain models: native records and wire-shaped responses."""
