"""Shared utilities for StackDeck (errors, logging)."""
