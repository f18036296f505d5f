"""
Caller identification via JWT bearer tokens
"""
from scorebook.auth.utils import get_current_user, create_access_token, verify_token

__all__ = [
    "get_current_user",
    "create_access_token",
    "verify_token",
]
