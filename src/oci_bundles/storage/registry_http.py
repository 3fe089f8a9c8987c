"""
Registry HTTP Client for OCI Distribution API.

Provides HTTP-based registry operations with proper Docker Registry v2 auth flow.
One RegistryHTTP instance talks to one registry host and implements the
repo-aware OciRegistry protocol.
"""
from __future__ import annotations

import base64
import hashlib
import json
import logging
import re
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, Iterator, Optional, Tuple, Union
from urllib.parse import urlencode, urljoin

import httpx
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..models import sha256_digest
from ..settings import Settings
from .oci_errors import OciAuthError, OciDigestMismatch, OciError, error_for_status
from .oci_media_types import ACCEPTED_MANIFEST_TYPES

__all__ = ["DockerAuth", "RegistryHTTP"]

logger = logging.getLogger(__name__)

# Docker Hub credentials are stored under its legacy index URL
_DOCKER_HUB_KEYS = ("docker.io", "index.docker.io", "registry-1.docker.io")
_DOCKER_HUB_AUTH_KEY = "https://index.docker.io/v1/"

# Read size for streamed blob downloads
BLOB_CHUNK_SIZE = 1024 * 1024


class DockerAuth:
    """Handle Docker Registry authentication from config files."""

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or Path.home() / ".docker" / "config.json"
        self._config_cache: Optional[dict] = None
        self._config_mtime: Optional[float] = None

    def get_credentials(self, registry: str) -> Optional[Tuple[str, str]]:
        """
        Get credentials for registry from Docker config.

        Returns: (username, password) or None if not found
        """
        config = self._load_config()
        if not config:
            return None

        auths = config.get("auths", {})

        candidates = [registry, f"https://{registry}", f"http://{registry}"]
        if registry in _DOCKER_HUB_KEYS:
            candidates.append(_DOCKER_HUB_AUTH_KEY)

        auth_entry = None
        for key in candidates:
            if key in auths:
                auth_entry = auths[key]
                break
        if auth_entry is None:
            return None

        # Handle base64 encoded auth field
        if "auth" in auth_entry:
            try:
                decoded = base64.b64decode(auth_entry["auth"]).decode()
                if ":" in decoded:
                    username, password = decoded.split(":", 1)
                    return (username, password)
            except ValueError as e:
                logger.debug(f"Ignoring undecodable auth entry for {registry}: {e}")

        # Handle username/password fields
        if "username" in auth_entry and "password" in auth_entry:
            return (auth_entry["username"], auth_entry["password"])

        return None

    def _load_config(self) -> Optional[dict]:
        """Load Docker config with caching and mtime checking."""
        if not self.config_path.exists():
            return None

        try:
            current_mtime = self.config_path.stat().st_mtime

            # Use cached version if file hasn't changed
            if (self._config_cache is not None and
                self._config_mtime is not None and
                current_mtime == self._config_mtime):
                return self._config_cache

            with open(self.config_path, 'r') as f:
                config = json.load(f)

            self._config_cache = config
            self._config_mtime = current_mtime
            return config

        except (OSError, json.JSONDecodeError) as e:
            logger.debug(f"Failed to read Docker config {self.config_path}: {e}")
            return None


class RegistryHTTP:
    """
    HTTP client for OCI Distribution API operations on one registry host.

    Implements the Docker Registry v2 auth flow with Bearer token support
    (and Basic challenges), and retries requests that never reached the
    registry. Responses that did reach it are never retried here.
    """

    def __init__(self, registry: str, settings: Settings, auth: Optional[DockerAuth] = None,
                 transport: Optional[httpx.BaseTransport] = None):
        """
        Initialize registry HTTP client.

        Args:
            registry: Registry hostname (e.g., "localhost:5000", "ghcr.io")
            settings: Timeouts, retry count, credentials and TLS policy
            auth: Docker auth handler (defaults to settings.docker_config or ~/.docker)
            transport: Optional httpx transport (tests inject httpx.MockTransport)
        """
        self.registry = registry
        self.settings = settings
        self.auth = auth or DockerAuth(settings.docker_config)
        self.insecure = settings.registry_insecure

        # Determine base URL
        if registry.startswith("http"):
            self.base_url = registry
        elif self.insecure:
            self.base_url = f"http://{registry}"
        else:
            self.base_url = f"https://{registry}"

        timeout = settings.http_timeout_s
        self.client = httpx.Client(
            http2=False,
            timeout=httpx.Timeout(connect=5.0, read=timeout, write=timeout, pool=5.0),
            follow_redirects=True,
            verify=not self.insecure,
            headers={"User-Agent": settings.user_agent},
            transport=transport,
        )

        # Token cache: {service/scope: (token, expiry_timestamp)}
        self._token_cache: Dict[str, Tuple[str, float]] = {}
        # Last Authorization header the registry accepted, sent up front
        self._authorization: Optional[str] = None
        # Upload sessions opened by declined mounts: {(repo, digest): location}
        self._pending_uploads: Dict[Tuple[str, str], str] = {}

    # Manifest operations

    def head_manifest(self, repo: str, ref: str) -> str:
        """HEAD manifest and return Docker-Content-Digest."""
        response = self._request(
            "HEAD", f"/v2/{repo}/manifests/{ref}",
            headers={"Accept": ", ".join(ACCEPTED_MANIFEST_TYPES)}
        )
        self._check(response, f"HEAD manifest {repo}:{ref}")

        digest = response.headers.get("Docker-Content-Digest")
        if not digest:
            raise OciError(f"Registry did not return Docker-Content-Digest header for {repo}:{ref}")
        return digest

    def get_manifest(self, repo: str, ref: str) -> Tuple[bytes, str]:
        """GET manifest bytes and the media type the registry reported."""
        response = self._request(
            "GET", f"/v2/{repo}/manifests/{ref}",
            headers={"Accept": ", ".join(ACCEPTED_MANIFEST_TYPES)}
        )
        self._check(response, f"GET manifest {repo}:{ref}")

        payload = response.content
        if ref.startswith("sha256:"):
            actual = sha256_digest(payload)
            if actual != ref:
                raise OciDigestMismatch(
                    f"Manifest {repo}@{ref} content hashes to {actual}",
                    expected=ref, actual=actual
                )

        media_type = response.headers.get("Content-Type", "").split(";", 1)[0].strip()
        if not media_type:
            try:
                media_type = json.loads(payload).get("mediaType", "")
            except (json.JSONDecodeError, UnicodeDecodeError, AttributeError):
                media_type = ""
        return payload, media_type

    def put_manifest(self, repo: str, media_type: str, payload: bytes, ref: str) -> str:
        """PUT manifest and validate the digest the registry computed."""
        expected = sha256_digest(payload)
        response = self._request(
            "PUT", f"/v2/{repo}/manifests/{ref}",
            headers={"Content-Type": media_type},
            content=payload
        )
        self._check(response, f"PUT manifest {repo}:{ref}")

        server_digest = response.headers.get("Docker-Content-Digest")
        if server_digest and server_digest != expected:
            raise OciDigestMismatch(
                f"Registry stored manifest {repo}:{ref} as {server_digest}, expected {expected}",
                expected=expected, actual=server_digest
            )
        logger.debug(f"Pushed manifest {repo}:{ref} ({media_type}, {expected})")
        return expected

    # Blob operations

    @contextmanager
    def open_blob(self, repo: str, digest: str) -> Iterator[Iterator[bytes]]:
        """
        Stream blob content without holding it in memory.

        Yields an iterator of chunks. The digest is checked once the last
        chunk has been read and a mismatch raises OciDigestMismatch.
        """
        response = self._request("GET", f"/v2/{repo}/blobs/{digest}", stream=True)
        try:
            if not response.is_success:
                response.read()
            self._check(response, f"GET blob {repo}@{digest}")
            yield self._verified_chunks(response, f"Blob {repo}@{digest}", digest)
        finally:
            response.close()

    def blob_exists(self, repo: str, digest: str) -> bool:
        """HEAD blob; 404 means absent, anything else unexpected raises."""
        response = self._request("HEAD", f"/v2/{repo}/blobs/{digest}")
        if response.status_code == 404:
            return False
        self._check(response, f"HEAD blob {repo}@{digest}")
        return True

    def put_blob(self, repo: str, digest: str, data: Union[bytes, Iterable[bytes]],
                 size: Optional[int] = None) -> None:
        """
        Monolithic blob upload: open an upload session, then PUT the content.

        Bytes are checked against the digest before anything is sent. An
        iterable of chunks is streamed as it is produced, with ``size`` as
        Content-Length; the registry verifies the digest when the PUT
        completes. A session left open by a declined mount of the same blob
        is used instead of opening a new one.
        """
        headers = {"Content-Type": "application/octet-stream"}
        if isinstance(data, bytes):
            actual = sha256_digest(data)
            if actual != digest:
                raise OciDigestMismatch(
                    f"Refusing to upload blob: content hashes to {actual}, expected {digest}",
                    expected=digest, actual=actual
                )
        elif size is not None:
            headers["Content-Length"] = str(size)

        location = self._pending_uploads.pop((repo, digest), None) or self._start_upload(repo, digest)

        separator = "&" if "?" in location else "?"
        upload_url = f"{location}{separator}{urlencode({'digest': digest})}"
        response = self._request("PUT", upload_url, headers=headers, content=data)
        self._check(response, f"PUT blob {repo}@{digest}")
        logger.debug(f"Uploaded blob {repo}@{digest}")

    def mount_blob(self, repo: str, digest: str, from_repo: str) -> bool:
        """Ask the registry to mount a blob from another repository."""
        query = urlencode({"mount": digest, "from": from_repo})
        response = self._request("POST", f"/v2/{repo}/blobs/uploads/?{query}")
        self._check(response, f"mount blob {from_repo}@{digest} into {repo}")

        if response.status_code == 201:
            logger.debug(f"Mounted blob {digest} from {from_repo} into {repo}")
            return True

        # 202: the registry opened a regular upload session instead
        location = response.headers.get("Location")
        if location:
            self._pending_uploads[(repo, digest)] = location
        return False

    def _start_upload(self, repo: str, digest: str) -> str:
        response = self._request("POST", f"/v2/{repo}/blobs/uploads/")
        self._check(response, f"start upload {repo}@{digest}")

        location = response.headers.get("Location")
        if not location:
            raise OciError(f"Registry did not return an upload Location for {repo}")
        return location

    @staticmethod
    def _verified_chunks(response: httpx.Response, what: str, digest: str) -> Iterator[bytes]:
        hasher = hashlib.sha256()
        for chunk in response.iter_bytes(BLOB_CHUNK_SIZE):
            hasher.update(chunk)
            yield chunk

        actual = f"sha256:{hasher.hexdigest()}"
        if actual != digest:
            raise OciDigestMismatch(f"{what} content hashes to {actual}", expected=digest, actual=actual)

    # Transport

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.settings.http_retry + 1),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
            retry=retry_if_exception_type((httpx.ConnectError, httpx.ConnectTimeout)),
            reraise=True,
        )

    def _request(self, method: str, path: str, headers: Optional[dict] = None,
                 stream: bool = False, **kwargs) -> httpx.Response:
        """
        Make HTTP request with transparent auth challenge handling.

        The last Authorization header the registry accepted is sent up front.
        Handles 401 responses by:
        1. Parsing WWW-Authenticate header for Bearer realm/service/scope
        2. Looking up credentials in settings or Docker config
        3. Exchanging credentials for Bearer token (or sending Basic auth)
        4. Retrying original request once with the Authorization header
        5. Caching tokens per service/scope

        A streamed request body cannot be sent twice, so a 401 answering one
        raises OciAuthError instead of retrying.
        """
        url = urljoin(self.base_url, path)
        request_headers = dict(headers or {})
        if self._authorization:
            request_headers.setdefault("Authorization", self._authorization)

        try:
            response = self._send(method, url, request_headers, stream, **kwargs)

            if response.status_code == 401:
                authorization = self._authorization_for(response.headers.get("WWW-Authenticate", ""))
                if authorization:
                    response.close()
                    if not isinstance(kwargs.get("content", b""), bytes):
                        raise OciAuthError(f"{method} {url} was rejected after its streamed body was sent")
                    request_headers["Authorization"] = authorization
                    response = self._send(method, url, request_headers, stream, **kwargs)
                    if response.status_code != 401:
                        self._authorization = authorization
        except httpx.RequestError as e:
            raise OciError(f"Network error during {method} {url}: {e}") from e

        return response

    def _send(self, method: str, url: str, headers: dict, stream: bool, **kwargs) -> httpx.Response:
        request = self.client.build_request(method, url, headers=headers, **kwargs)
        return self._retrying()(self.client.send, request, stream=stream)

    def _check(self, response: httpx.Response, action: str) -> None:
        """Raise the OciError matching a non-2xx response."""
        if response.is_success:
            return
        detail = response.text[:200] if response.content else ""
        message = f"{action} failed with HTTP {response.status_code}"
        if detail:
            message = f"{message}: {detail}"
        raise error_for_status(response.status_code, message)

    def _credentials(self) -> Optional[Tuple[str, str]]:
        if self.settings.registry_user and self.settings.registry_pass:
            return (self.settings.registry_user, self.settings.registry_pass)
        return self.auth.get_credentials(self.registry)

    def _authorization_for(self, www_authenticate: str) -> Optional[str]:
        """Build an Authorization header value answering a 401 challenge."""
        if www_authenticate.startswith("Bearer "):
            token = self._handle_bearer_auth(www_authenticate)
            return f"Bearer {token}" if token else None

        if www_authenticate.startswith("Basic "):
            creds = self._credentials()
            if not creds:
                return None
            encoded = base64.b64encode(f"{creds[0]}:{creds[1]}".encode()).decode()
            return f"Basic {encoded}"

        return None

    def _handle_bearer_auth(self, www_authenticate: str) -> Optional[str]:
        """
        Handle Bearer token authentication flow.

        Parses WWW-Authenticate header, gets credentials, exchanges for token.
        Registries that allow anonymous pulls issue tokens without credentials.
        """
        bearer_params = {}
        for match in re.finditer(r'(\w+)="([^"]*)"', www_authenticate):
            bearer_params[match.group(1)] = match.group(2)

        realm = bearer_params.get("realm")
        service = bearer_params.get("service")
        scope = bearer_params.get("scope")

        if not realm:
            return None

        cache_key = f"{service or ''}:{scope or ''}"
        if cache_key in self._token_cache:
            token, expiry = self._token_cache[cache_key]
            if time.time() < expiry - 30:  # 30s buffer before expiry
                return token

        params = {}
        if service:
            params["service"] = service
        if scope:
            params["scope"] = scope

        creds = self._credentials()
        try:
            auth_response = self.client.get(realm, params=params, auth=creds if creds else None)
        except httpx.RequestError as e:
            logger.debug(f"Token request to {realm} failed: {e}")
            return None

        if not auth_response.is_success:
            logger.debug(f"Token request to {realm} returned HTTP {auth_response.status_code}")
            return None

        try:
            token_data = auth_response.json()
        except json.JSONDecodeError:
            logger.debug(f"Token endpoint {realm} returned non-JSON body")
            return None

        token = token_data.get("token") or token_data.get("access_token")
        if token:
            expires_in = token_data.get("expires_in", 3600)
            self._token_cache[cache_key] = (token, time.time() + expires_in)
        return token

    def close(self):
        """Close HTTP client."""
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
