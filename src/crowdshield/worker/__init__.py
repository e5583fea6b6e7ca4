"""Background job entrypoints."""
