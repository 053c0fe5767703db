"""Data models for StackDeck stacks and rollouts."""
