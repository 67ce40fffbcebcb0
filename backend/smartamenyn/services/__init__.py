"""Application services: category classification, store persistence, offer sync."""
