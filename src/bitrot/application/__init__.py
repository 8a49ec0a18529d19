"""Application layer - services, workers and use cases."""
