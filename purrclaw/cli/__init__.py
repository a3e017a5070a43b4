"""CLI module for purrclaw."""
