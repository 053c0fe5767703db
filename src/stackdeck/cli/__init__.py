"""Command-line interface for StackDeck."""
