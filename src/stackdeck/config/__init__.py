"""Project configuration loading for StackDeck."""

from stackdeck.config.loader import PROJECT_FILE, ProjectLoader

__all__ = ["PROJECT_FILE", "ProjectLoader"]
