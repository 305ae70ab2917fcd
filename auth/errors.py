"""
auth/errors.py -- Exception taxonomy for the credential store and token issuer.

Every failure the identity core reports is an IdentityError subclass with a
stable machine-readable `code`. The API layer maps the base classes onto HTTP
status codes; nothing in auth/ knows about HTTP.

  ValidationError    bad input shape or password/username policy
  NotFoundError      user or role absent (UserNotFound, RoleNotFound)
  AuthError          credential mismatch (InvalidCredentials)
  TokenError         refresh token unusable (TokenNotFound, TokenRevoked, TokenExpired)
  PersistenceError   storage layer failure; the transaction was rolled back
  OperationTimeout   caller-supplied timeout elapsed (also a builtin TimeoutError)

TokenRevoked subclasses TokenNotFound: once a token is removed it is, for every
caller, simply not there. The subclass only adds that it used to exist.

Layer rule: no imports from api/, client/, or core/.
"""

from __future__ import annotations


class IdentityError(Exception):
    code = "identity_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class ValidationError(IdentityError):
    code = "validation_error"


class NotFoundError(IdentityError):
    code = "not_found"


class UserNotFound(NotFoundError):
    code = "user_not_found"


class RoleNotFound(NotFoundError):
    code = "role_not_found"


class AuthError(IdentityError):
    code = "auth_error"


class InvalidCredentials(AuthError):
    code = "invalid_credentials"


class TokenError(IdentityError):
    code = "invalid_token"


class TokenNotFound(TokenError):
    code = "token_not_found"


class TokenRevoked(TokenNotFound):
    code = "token_revoked"


class TokenExpired(TokenError):
    code = "token_expired"


class PersistenceError(IdentityError):
    code = "persistence_error"


class OperationTimeout(IdentityError, TimeoutError):
    code = "timeout"
