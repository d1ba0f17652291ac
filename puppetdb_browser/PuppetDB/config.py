"""
Configuration helpers for the PuppetDB provider.

The configuration file maps instance names to PuppetDB endpoint descriptors:

    pe1:
      puppetdb_url: https://puppetdb.example.com:8081
      cacert: /etc/puppetlabs/puppet/ssl/certs/ca.pem
      rbac_token: 0123456789abcdef

Certificate-authenticated instances give ``key`` and ``cert`` instead of
``rbac_token``. The mapping may also be nested under a top-level ``puppet`` key.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from puppetdb_browser.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "PUPPETDB_BROWSER_CONFIG"
DEFAULT_CONFIG_PATH = Path("~/.puppetdb_browser.yaml")


@dataclass(frozen=True)
class TokenAuth:
    """PE RBAC token authentication."""

    token: str


@dataclass(frozen=True)
class CertAuth:
    """Client certificate authentication."""

    key: str
    cert: str


AuthMode = Union[TokenAuth, CertAuth]


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class InstanceConfig:
    """Named PuppetDB endpoint descriptor. Immutable once loaded."""

    name: str
    puppetdb_url: str
    cacert: Optional[str] = None
    auth: Optional[AuthMode] = None

    @classmethod
    def from_dict(cls, name: str, payload: Mapping[str, Any]) -> "InstanceConfig":
        if not isinstance(payload, Mapping):
            raise ConfigError(f"Instance '{name}' must be a mapping, got {type(payload).__name__}")
        url = _clean(payload.get("puppetdb_url"))
        if url is None:
            raise ConfigError(f"Instance '{name}' is missing puppetdb_url")

        # An empty or whitespace-only token counts as absent.
        token = _clean(payload.get("rbac_token"))
        key = _clean(payload.get("key"))
        cert = _clean(payload.get("cert"))
        auth: Optional[AuthMode] = None
        if token is not None:
            auth = TokenAuth(token=token)
        elif key is not None and cert is not None:
            auth = CertAuth(key=key, cert=cert)
        else:
            logger.debug("Instance %s has no usable authentication settings", name)

        return cls(
            name=name,
            puppetdb_url=url,
            cacert=_clean(payload.get("cacert")),
            auth=auth,
        )


def resolve_config_path(config_file: Optional[str] = None) -> Path:
    """Pick the config file: explicit argument, then environment, then default."""
    if config_file:
        return Path(config_file).expanduser().resolve()
    configured = os.getenv(CONFIG_ENV_VAR)
    if configured:
        return Path(configured).expanduser().resolve()
    return DEFAULT_CONFIG_PATH.expanduser()


def parse_config(data: Any) -> Dict[str, InstanceConfig]:
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigError("Configuration must be a mapping of instance names")
    if isinstance(data.get("puppet"), Mapping):
        data = data["puppet"]
    return {str(name): InstanceConfig.from_dict(str(name), payload) for name, payload in data.items()}


def read_config(config_file: Optional[str] = None) -> Dict[str, InstanceConfig]:
    """Read instance configuration from a YAML file."""
    config_path = resolve_config_path(config_file)
    logger.debug("Reading configuration from %s", config_path)
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {config_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc
    return parse_config(data)
