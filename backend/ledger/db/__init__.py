"""Database base class and session management."""
