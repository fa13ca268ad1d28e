"""Request signing for the Dropbox API."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol
from urllib.parse import urlencode

import httpx

AUTHORIZE_URL = "https://www.dropbox.com/1/oauth2/authorize"


class RequestSigner(Protocol):
    """Anything that can attach credentials to an outgoing request."""

    def sign(self, request: httpx.Request) -> None: ...


@dataclass
class OAuth2:
    """Signs requests with an OAuth2 bearer token.

    Only tokens that were already issued are supported; the token is
    obtained out of band, e.g. from the URL built by :func:`authorize_url`.
    """

    access_token: str
    token_type: str = "bearer"
    uid: str = ""

    def sign(self, request: httpx.Request) -> None:
        request.headers["Authorization"] = f"Bearer {self.access_token}"


def authorize_url(app_key: str, redirect_uri: str) -> str:
    """Build the URL a user opens to grant the app a token.

    Args:
        app_key: Dropbox app key
        redirect_uri: Where Dropbox redirects with the token fragment

    Returns:
        Authorization URL for the token flow
    """
    query = urlencode(
        {
            "response_type": "token",
            "client_id": app_key,
            "redirect_uri": redirect_uri,
        }
    )
    return f"{AUTHORIZE_URL}?{query}"
