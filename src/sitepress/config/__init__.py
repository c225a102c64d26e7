"""Configuration utilities for Sitepress."""

from .credentials import CredentialStore, EnvCredentialStore
from .loader import Config, ConfigModel, build_config, load_config

__all__ = [
    "Config",
    "ConfigModel",
    "CredentialStore",
    "EnvCredentialStore",
    "build_config",
    "load_config",
]
