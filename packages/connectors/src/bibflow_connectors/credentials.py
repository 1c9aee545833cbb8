from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol


class CredentialProvider(Protocol):
    """Where sources look up API keys and polite-pool contact emails."""

    def api_key(self, provider_id: str) -> str | None:
        ...

    def email(self, provider_id: str) -> str | None:
        ...


class StaticCredentialProvider:
    """
    In-memory credentials.

    Args:
        api_keys: Provider id to API key
        email: Contact email used for every provider that accepts one
        emails: Per-provider overrides of ``email``
    """

    def __init__(
        self,
        api_keys: Mapping[str, str | None] | None = None,
        email: str | None = None,
        emails: Mapping[str, str | None] | None = None,
    ):
        self._api_keys = {k: v for k, v in (api_keys or {}).items() if v}
        self._email = email or None
        self._emails = {k: v for k, v in (emails or {}).items() if v}

    def api_key(self, provider_id: str) -> str | None:
        return self._api_keys.get(provider_id)

    def email(self, provider_id: str) -> str | None:
        return self._emails.get(provider_id, self._email)

    def configured_providers(self) -> list[str]:
        return sorted(self._api_keys)
