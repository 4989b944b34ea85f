"""
Fixed identity provider for command line use and tests.
"""

from typing import Optional


class StaticIdentityProvider:
    """Always reports the same user."""

    def __init__(self, user_id: Optional[str] = None, email: Optional[str] = None):
        self.user_id = user_id
        self.email = email

    def current_user_id(self) -> Optional[str]:
        return self.user_id

    def current_user_email(self) -> Optional[str]:
        return self.email
