"""Exceptions raised while bridging an identity into a backend session."""


class AuthError(Exception):
    """Base class for sign-in and session failures."""


class InteractionRequired(AuthError):
    """Silent acquisition is impossible; the user has to interact."""


class PopupFailed(AuthError):
    """The popup was blocked, closed, or is not supported by the provider."""


class RedirectRequired(AuthError):
    """The only remaining option is a full-page redirect to ``url``."""

    def __init__(self, url: str):
        super().__init__(f"Redirect to identity provider required: {url}")
        self.url = url


class IdentityProviderError(AuthError):
    """The identity provider rejected the request."""

    def __init__(self, code: str, description: str = ""):
        super().__init__(f"{code}: {description}" if description else code)
        self.code = code
        self.description = description


class SessionExchangeError(AuthError):
    """The backend refused to mint a session for the identity token."""


class HostUnavailable(AuthError):
    """No embedding host answered, or it could not hand out a token."""
