"""Database models and session."""
