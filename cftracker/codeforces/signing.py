"""Request signing for authenticated Codeforces API calls.

The API authenticates a call by the query parameters ``apiKey``, ``time``
and ``apiSig``. ``apiSig`` is ``"{nonce}/{sha512}"`` where the digest covers
``"{method}?{sorted params}#{secret}"``; the sort runs over every parameter,
``apiKey`` and ``time`` included. A wrong canonical string does not fail at
the HTTP level: the API answers 200 with ``status: FAILED``.
"""
from __future__ import annotations

import hashlib
import random
import time

from .common import CredentialsError


def _check_credentials(api_key: str | None, api_secret: str | None) -> None:
    missing = []
    if not api_key:
        missing.append('CODEFORCES_API_KEY')
    if not api_secret:
        missing.append('CODEFORCES_API_SECRET')
    if missing:
        raise CredentialsError(
            f"Codeforces API credentials are not configured. "
            f"Missing: {', '.join(missing)}"
        )


def generate_nonce() -> int:
    """Six-digit random prefix for ``apiSig``."""
    return random.randint(100000, 999999)


def canonical_string(method: str, params: dict, api_secret: str) -> str:
    query = '&'.join(f'{key}={params[key]}' for key in sorted(params))
    return f'{method}?{query}#{api_secret}'


def build_signed_params(
    method: str,
    params: dict | None,
    api_key: str | None,
    api_secret: str | None,
    now: int | None = None,
    nonce: int | None = None,
) -> dict:
    """Return ``params`` augmented with ``apiKey``, ``time`` and ``apiSig``.

    Args:
        method: API method name, e.g. ``user.status``.
        params: Method parameters. ``None`` values are dropped, the rest
            are stringified.
        api_key: Codeforces API key.
        api_secret: Codeforces API secret.
        now: Unix time to sign with. Defaults to the current time.
        nonce: Six-digit prefix. Defaults to a random one.

    Raises:
        CredentialsError: ``api_key`` or ``api_secret`` is empty.
    """
    _check_credentials(api_key, api_secret)

    if nonce is None:
        nonce = generate_nonce()
    if now is None:
        now = int(time.time())

    signed = {
        key: str(value)
        for key, value in (params or {}).items()
        if value is not None
    }
    signed['apiKey'] = api_key
    signed['time'] = str(int(now))

    digest = hashlib.sha512(
        canonical_string(method, signed, api_secret).encode('utf-8')
    ).hexdigest()
    signed['apiSig'] = f'{nonce}/{digest}'
    return signed
