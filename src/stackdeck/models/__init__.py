"""Pydantic models for StackDeck projects and deployments."""
