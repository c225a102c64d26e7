"""Credential lookup for secrets kept out of configuration files."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Protocol

GITHUB_TOKEN_ENV = "SITEPRESS_GITHUB_TOKEN"
BASIC_AUTH_PASSWORD_ENV = "SITEPRESS_BASIC_AUTH_PASSWORD"


class CredentialStore(Protocol):
    """Supplies decrypted secrets on demand."""

    def github_token(self) -> str | None:
        """Return the GitHub API token, if any."""

    def basic_auth_password(self) -> str | None:
        """Return the HTTP Basic-Auth password for the origin, if any."""


@dataclass(slots=True)
class EnvCredentialStore:
    """Read secrets from environment variables (populated by `.env` loading)."""

    environ: Mapping[str, str] = field(default_factory=lambda: os.environ)

    def github_token(self) -> str | None:
        return self.environ.get(GITHUB_TOKEN_ENV) or None

    def basic_auth_password(self) -> str | None:
        return self.environ.get(BASIC_AUTH_PASSWORD_ENV) or None
