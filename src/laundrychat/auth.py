"""Concrete implementations for the session collaborator."""

from abc import ABC, abstractmethod
from typing import Optional

from .errors import ValidationFailed
from .models import Identity

SIGN_IN_NOTICE = "Unable to load chat - please sign in"


class Auth(ABC):
    """Interface for identifying the current viewer."""

    @abstractmethod
    def get_current_identity(self, **kwargs) -> Optional[Identity]:
        """Returns the signed-in viewer, or None when nobody is signed in."""
        pass


class Static(Auth):
    """Always reports the same viewer."""

    def __init__(self, identity: Identity):
        """Initialize with an identity.

        Parameters
        ----------
        identity : Identity
            The viewer every call returns.
        """
        self._identity = identity

    def get_current_identity(self, **kwargs) -> Optional[Identity]:
        return self._identity


class Anonymous(Auth):
    """Nobody is signed in."""

    def get_current_identity(self, **kwargs) -> Optional[Identity]:
        return None


def require_identity(identity: Optional[Identity]) -> Identity:
    if identity is None:
        raise ValidationFailed(SIGN_IN_NOTICE)
    return identity
