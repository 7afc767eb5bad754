"""Roadmap Flow: roadmap-generation workflow engine."""
