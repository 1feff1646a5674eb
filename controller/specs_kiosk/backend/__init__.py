"""Clients for the remote avatar vendor."""
from .avatar_client import AvatarSessionClient
from .http_client import AvatarAuthClient

__all__ = ["AvatarAuthClient", "AvatarSessionClient"]
