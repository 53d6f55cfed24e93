"""Re-exports the User model for authentication code."""

from database.models import User  # noqa: F401

__all__ = ["User"]
