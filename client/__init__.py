"""client/ -- HTTP client for the identity server's authentication endpoints."""

from client.authentication import AuthenticationClient, AuthenticationClientError, TokenPair

__all__ = ["AuthenticationClient", "AuthenticationClientError", "TokenPair"]
