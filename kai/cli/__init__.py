"""CLI module for kAI."""
