"""Click command groups registered on the stackdeck CLI."""
