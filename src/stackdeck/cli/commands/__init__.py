"""StackDeck CLI command groups."""
