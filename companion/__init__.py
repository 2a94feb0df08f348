"""Companion: AI generation layer for the chat-companion app."""

__version__ = "0.1.0"
