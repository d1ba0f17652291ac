from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from puppetdb_browser.errors import AuthConfigError, MalformedResponseError, RemoteQueryError
from puppetdb_browser.PuppetDB.config import CertAuth, InstanceConfig, TokenAuth
from puppetdb_browser.PuppetDB.query import Expr, serialize

logger = logging.getLogger(__name__)

QUERY_PREFIX = "/pdb/query/v4"
DEFAULT_TIMEOUT = 30


@dataclass(frozen=True)
class QueryResponse:
    """Parsed PuppetDB response: a list of records, or one object for catalogs."""

    resource: str
    data: Any
    status_code: int


class PuppetDBClient:
    """Minimal PuppetDB query client.

    Construction performs no network I/O; connection and authentication
    problems surface on the first request.
    """

    def __init__(
        self,
        server: str,
        *,
        token: Optional[str] = None,
        cacert: Optional[str] = None,
        pem: Optional[Dict[str, str]] = None,
        timeout: int = DEFAULT_TIMEOUT,
    ) -> None:
        self.server = server.rstrip("/")
        self.token = token
        self.cacert = cacert
        self.pem = pem
        self.timeout = timeout

    @property
    def auth_mode(self) -> str:
        return "token" if self.token is not None else "cert"

    def _request_options(self) -> Dict[str, Any]:
        headers = {"Accept": "application/json"}
        options: Dict[str, Any] = {"headers": headers, "timeout": self.timeout}
        if self.token is not None:
            headers["X-Authentication"] = self.token
            options["verify"] = self.cacert if self.cacert else True
        elif self.pem is not None:
            options["cert"] = (self.pem["cert"], self.pem["key"])
            options["verify"] = self.pem["ca_file"]
        return options

    def request(self, resource: str, query: Optional[Expr] = None) -> QueryResponse:
        url = f"{self.server}{QUERY_PREFIX}/{resource.lstrip('/')}"
        params: Dict[str, str] = {}
        serialized = serialize(query)
        if serialized is not None:
            params["query"] = serialized

        logger.debug("GET %s query=%s", url, serialized)
        try:
            response = requests.get(url, params=params, **self._request_options())
        except requests.RequestException as exc:
            raise RemoteQueryError(f"Request to {url} failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            body = (response.text or "")[:200]
            raise RemoteQueryError(
                f"PuppetDB returned HTTP {response.status_code} for {resource}: {body}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise MalformedResponseError(f"PuppetDB returned non-JSON data for {resource}") from exc

        if isinstance(data, list):
            logger.debug("Received %d records for %s", len(data), resource)
        return QueryResponse(resource=resource, data=data, status_code=response.status_code)


def build_client(config: InstanceConfig) -> PuppetDBClient:
    """Build an authenticated client for one configured instance.

    Token auth wins when present; otherwise a complete certificate set
    (cacert, key and cert) is required.
    """
    auth = config.auth
    if isinstance(auth, TokenAuth):
        return PuppetDBClient(config.puppetdb_url, token=auth.token, cacert=config.cacert)
    if isinstance(auth, CertAuth):
        if config.cacert is None:
            raise AuthConfigError(
                f"Instance '{config.name}' uses certificate auth but has no cacert"
            )
        return PuppetDBClient(
            config.puppetdb_url,
            pem={"ca_file": config.cacert, "key": auth.key, "cert": auth.cert},
        )
    raise AuthConfigError(
        f"Instance '{config.name}' needs either rbac_token or cacert, key and cert"
    )
