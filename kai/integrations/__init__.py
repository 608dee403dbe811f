"""Clients for services outside the kAI core."""
