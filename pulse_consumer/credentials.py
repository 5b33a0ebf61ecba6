"""
Credential resolution for Pulse connections.

User and password are each taken from the first non-empty tier of:

1. the explicit argument,
2. the ``user:password@`` part of the broker URL,
3. the ``PULSE_USERNAME`` / ``PULSE_PASSWORD`` environment variables,
4. the literal ``"guest"``.

The resolved pair is then written back into the URL, replacing whatever
credentials it carried. Nothing here touches the network.
"""

import os
from typing import Literal, Mapping, Optional, Tuple
from urllib.parse import quote, unquote

from pydantic import BaseModel, ConfigDict

from .config import (
    DEFAULT_PASSWORD,
    DEFAULT_URL,
    DEFAULT_USER,
    PASSWORD_ENV,
    USERNAME_ENV,
)

Source = Literal["argument", "url", "environment", "default"]

_AUTHORITY_END = "/?#"


class Credentials(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: str
    password: str
    url: str
    user_source: Source
    password_source: Source


def split_url(url: str) -> Optional[Tuple[str, Optional[str], str]]:
    """
    Split ``url`` into ``(scheme_prefix, userinfo, rest)``.

    ``scheme_prefix`` keeps the ``://`` separator, ``userinfo`` is the raw
    text before ``@`` in the authority (None when there is no ``@``) and
    ``rest`` is host, port, path and query. Returns None when ``url`` has
    no ``://`` at all.
    """
    scheme, sep, tail = url.partition("://")
    if not sep:
        return None
    end = len(tail)
    for ch in _AUTHORITY_END:
        pos = tail.find(ch)
        if pos != -1 and pos < end:
            end = pos
    authority, remainder = tail[:end], tail[end:]
    userinfo, at, host = authority.rpartition("@")
    return scheme + sep, (userinfo if at else None), host + remainder


def extract_credentials(url: str) -> Tuple[str, str]:
    parts = split_url(url)
    if parts is None or parts[1] is None:
        return "", ""
    user, _, password = parts[1].partition(":")
    return unquote(user), unquote(password)


def with_credentials(url: str, user: str, password: str) -> str:
    """Return ``url`` with its authority rewritten to ``user:password@host``."""
    parts = split_url(url)
    if parts is None:
        return url
    prefix, _, rest = parts
    return f"{prefix}{quote(user, safe='')}:{quote(password, safe='')}@{rest}"


def _first_of(*candidates: Tuple[str, Source]) -> Tuple[str, Source]:
    for value, source in candidates:
        if value:
            return value, source
    return candidates[-1]


def resolve(
    user: str = "",
    password: str = "",
    url: str = "",
    environ: Optional[Mapping[str, str]] = None,
) -> Credentials:
    if environ is None:
        environ = os.environ
    url = url or DEFAULT_URL
    url_user, url_password = extract_credentials(url)

    user, user_source = _first_of(
        (user, "argument"),
        (url_user, "url"),
        (environ.get(USERNAME_ENV, ""), "environment"),
        (DEFAULT_USER, "default"),
    )
    password, password_source = _first_of(
        (password, "argument"),
        (url_password, "url"),
        (environ.get(PASSWORD_ENV, ""), "environment"),
        (DEFAULT_PASSWORD, "default"),
    )

    return Credentials(
        user=user,
        password=password,
        url=with_credentials(url, user, password),
        user_source=user_source,
        password_source=password_source,
    )
