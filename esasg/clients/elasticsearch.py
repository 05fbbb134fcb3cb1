"""Elasticsearch REST client.

A thin wrapper over a pooled ``requests`` session. Every call accepts a
``CancelToken`` whose deadline bounds the request timeout, and every failure
is raised as ``TransientRemoteError`` tagged with a short cause.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

import certifi
import requests
import urllib3
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .. import __version__
from ..concurrency import CancelToken
from ..errors import TransientRemoteError

logger = logging.getLogger(__name__)

DEFAULT_URL = "http://127.0.0.1:9200"
DEFAULT_CA_BUNDLE = certifi.where()


class ElasticsearchClient:
    """Client for the handful of cluster APIs the agents use.

    Requests go to the first URL that accepts a connection; the remaining
    URLs are tried only on connection errors or timeouts.
    """

    name = "elasticsearch"

    def __init__(
        self,
        urls: Sequence[str] = (DEFAULT_URL,),
        timeout: float = 30,
        retries: int = 3,
        verify: bool = True,
        ca_bundle: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        if isinstance(urls, str):
            urls = [urls]
        self.urls = [u.rstrip("/") for u in urls] or [DEFAULT_URL]
        self.timeout = timeout
        self.retries = retries
        self._verify = self._determine_verify(verify, ca_bundle)
        self._session = session

        if self._verify is False:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    @staticmethod
    def _determine_verify(verify: bool, ca_bundle: Optional[str]):
        if not verify:
            return False
        if ca_bundle:
            return ca_bundle
        return DEFAULT_CA_BUNDLE

    def _get_session(self) -> requests.Session:
        """Get or create the pooled session with retry configuration."""
        if self._session is None:
            session = requests.Session()
            retry = Retry(
                total=self.retries,
                connect=self.retries,
                read=self.retries,
                backoff_factor=0.5,
                status_forcelist=(429, 502, 503, 504),
                allowed_methods=("GET", "HEAD", "PUT", "DELETE"),
            )
            adapter = HTTPAdapter(max_retries=retry, pool_connections=4, pool_maxsize=16)
            session.mount("https://", adapter)
            session.mount("http://", adapter)
            session.verify = self._verify
            session.headers.update({
                "User-Agent": f"elasticsearch-asg/{__version__}",
                "Accept": "application/json",
            })
            self._session = session
        return self._session

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

    def _request(
        self,
        method: str,
        path: str,
        *,
        cause: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Any] = None,
        token: Optional[CancelToken] = None,
        timeout: Optional[float] = None,
        allow_404: bool = False,
    ) -> Any:
        session = self._get_session()
        default_timeout = timeout if timeout is not None else self.timeout
        last_exc: Optional[Exception] = None

        for base in self.urls:
            request_timeout = token.timeout(default_timeout) if token else default_timeout
            try:
                resp = session.request(
                    method,
                    base + path,
                    params=params,
                    json=body,
                    timeout=request_timeout,
                )
            except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as exc:
                logger.debug(f"[{self.name}] {method} {base}{path} failed: {exc}")
                last_exc = exc
                continue
            except requests.exceptions.RequestException as exc:
                raise TransientRemoteError(self.name, f"{cause}: {exc}", exc)

            if allow_404 and resp.status_code == 404:
                return None
            if resp.status_code >= 400:
                raise TransientRemoteError(
                    self.name,
                    f"{cause}: HTTP {resp.status_code}: {resp.text[:200]}",
                    status_code=resp.status_code,
                )
            if not resp.content:
                return {}
            try:
                return resp.json()
            except ValueError as exc:
                raise TransientRemoteError(self.name, f"{cause}: invalid JSON response", exc)

        raise TransientRemoteError(self.name, f"{cause}: {last_exc}", last_exc)

    # Cluster state

    def nodes_info(self, token: Optional[CancelToken] = None) -> Dict[str, Any]:
        return self._request("GET", "/_nodes/_all/http", cause="error getting nodes info", token=token)

    def cat_shards(self, token: Optional[CancelToken] = None) -> List[Dict[str, Any]]:
        rows = self._request(
            "GET",
            "/_cat/shards",
            params={"format": "json", "h": "index,shard,prirep,state,node"},
            cause="error getting shards",
            token=token,
        )
        return rows or []

    def get_cluster_settings(
        self,
        filter_path: Optional[Iterable[str]] = None,
        token: Optional[CancelToken] = None,
    ) -> Dict[str, Any]:
        params = {"filter_path": ",".join(filter_path)} if filter_path else None
        return self._request(
            "GET", "/_cluster/settings", params=params, cause="error getting cluster settings", token=token
        )

    def put_cluster_settings(self, body: Dict[str, Any], token: Optional[CancelToken] = None) -> Dict[str, Any]:
        return self._request(
            "PUT", "/_cluster/settings", body=body, cause="error putting cluster settings", token=token
        )

    def cluster_health(self, token: Optional[CancelToken] = None) -> Dict[str, Any]:
        return self._request("GET", "/_cluster/health", cause="error getting cluster health", token=token)

    def indices_recovery(
        self,
        active_only: bool = True,
        detailed: bool = False,
        token: Optional[CancelToken] = None,
    ) -> Dict[str, Any]:
        params = {
            "active_only": "true" if active_only else "false",
            "detailed": "true" if detailed else "false",
        }
        return self._request("GET", "/_recovery", params=params, cause="error getting recovery", token=token)

    def nodes_stats(
        self,
        metrics: Sequence[str] = ("os", "jvm", "fs"),
        token: Optional[CancelToken] = None,
    ) -> Dict[str, Any]:
        path = "/_nodes/stats/" + ",".join(metrics)
        return self._request("GET", path, cause="error getting nodes stats", token=token)

    # Snapshots

    def get_repository(self, name: str, token: Optional[CancelToken] = None) -> Optional[Dict[str, Any]]:
        """Return the repository description, or None if it does not exist."""
        resp = self._request(
            "GET", f"/_snapshot/{name}", cause="error getting snapshot repository", token=token, allow_404=True
        )
        if resp is None:
            return None
        return resp.get(name)

    def create_repository(
        self,
        name: str,
        repo_type: str,
        settings: Optional[Dict[str, Any]] = None,
        token: Optional[CancelToken] = None,
    ) -> Dict[str, Any]:
        body = {"type": repo_type, "settings": settings or {}}
        return self._request(
            "PUT", f"/_snapshot/{name}", body=body, cause="error creating snapshot repository", token=token
        )

    def create_snapshot(
        self,
        repository: str,
        snapshot: str,
        wait_for_completion: bool = True,
        timeout: Optional[float] = None,
        token: Optional[CancelToken] = None,
    ) -> Dict[str, Any]:
        params = {"wait_for_completion": "true" if wait_for_completion else "false"}
        return self._request(
            "PUT",
            f"/_snapshot/{repository}/{snapshot}",
            params=params,
            cause="error creating snapshot",
            token=token,
            timeout=timeout,
        )

    def get_snapshots(self, repository: str, token: Optional[CancelToken] = None) -> List[Dict[str, Any]]:
        resp = self._request("GET", f"/_snapshot/{repository}/_all", cause="error listing snapshots", token=token)
        return resp.get("snapshots", [])

    def delete_snapshot(self, repository: str, snapshot: str, token: Optional[CancelToken] = None) -> Dict[str, Any]:
        return self._request(
            "DELETE", f"/_snapshot/{repository}/{snapshot}", cause="error deleting snapshot", token=token
        )
