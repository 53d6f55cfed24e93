"""
auth — user sessions for the connector API.

Provides:
  • signed session tokens (Bearer header or ``session`` cookie)
  • bcrypt password hashing
  • register / login / logout routes
  • ``get_current_user_id`` FastAPI dependency
"""
