# Overview: Request identity seam; an external provider resolves who is calling.

"""
Identity

The application does not authenticate users itself. Whoever embeds it
installs a provider:

    set_identity_provider(app, provider)

where provider(request) returns a CurrentUser or None. There is no fallback
user: without a provider, or when the provider returns None, every protected
route answers 401.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from flask import current_app, g, request


@dataclass(frozen=True)
class CurrentUser:
    id: int
    role: str

    def to_dict(self) -> dict:
        return {"id": self.id, "role": self.role}


IdentityProvider = Callable[[object], Optional[CurrentUser]]

_EXTENSION_KEY = "tradesphere.identity_provider"


def set_identity_provider(app, provider: IdentityProvider | None) -> None:
    """Install (or with None, remove) the app's identity provider."""
    if provider is None:
        app.extensions.pop(_EXTENSION_KEY, None)
    else:
        app.extensions[_EXTENSION_KEY] = provider


def resolve_current_user() -> CurrentUser | None:
    """Ask the provider for the caller of the current request and store it on g."""
    provider = current_app.extensions.get(_EXTENSION_KEY)
    user = provider(request) if provider is not None else None
    g.current_user = user
    return user


def current_user_id() -> int | None:
    user = g.get("current_user")
    return user.id if user is not None else None
