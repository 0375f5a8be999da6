from __future__ import annotations

import urllib.parse
from collections.abc import Mapping

LOOPBACK_HOSTS = {"localhost", "127.0.0.1", "::1"}


def is_loopback_redirect_uri(uri: str) -> bool:
    parsed = urllib.parse.urlparse(uri)
    if parsed.scheme != "http":
        return False
    if parsed.hostname not in LOOPBACK_HOSTS:
        return False
    return bool(parsed.port)


def append_query_params(url: str, params: dict[str, str]) -> str:
    parsed = urllib.parse.urlparse(url)
    existing = urllib.parse.parse_qs(parsed.query, keep_blank_values=True)
    for key, value in params.items():
        existing[key] = [value]

    new_query = urllib.parse.urlencode(existing, doseq=True)
    return urllib.parse.urlunparse(parsed._replace(query=new_query))


def parse_redirect_uri(uri: str) -> dict[str, str]:
    """Collect the parameters of a redirect URI.

    Query and fragment parameters are merged, the fragment winning, since some
    providers answer in the fragment. Repeated keys keep their first value.
    """
    parsed = urllib.parse.urlparse(uri)
    params: dict[str, str] = {}
    for part in (parsed.query, parsed.fragment):
        for key, values in urllib.parse.parse_qs(part, keep_blank_values=True).items():
            params[key] = values[0]
    return params


def normalize_envelope(envelope: object) -> dict[str, str] | None:
    """Turn a user-agent result envelope into flat redirect parameters.

    Accepts a mapping of parameters (values may be lists, as produced by
    ``parse_qs``) or a full redirect URI. Anything else, or an envelope with
    no parameters at all, yields ``None``.
    """
    if isinstance(envelope, str):
        if "?" not in envelope and "#" not in envelope:
            return None
        params = parse_redirect_uri(envelope)
    elif isinstance(envelope, Mapping):
        params = {}
        for key, value in envelope.items():
            if isinstance(value, (list, tuple)):
                if not value:
                    continue
                value = value[0]
            if value is None:
                continue
            params[str(key)] = str(value)
    else:
        return None

    return params or None
