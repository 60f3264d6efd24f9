from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

import requests

from .collaborators import UploadedImageRef
from .config import RuntimeSecrets, retry_config_from
from .config_schema import AppConfig
from .errors import PublishError, ResolutionError, UploadError
from .http_retry import is_retryable_http_exception
from .record import POST_COLLECTION, PostRecord
from .retry import OnRetryFn, RetryConfig, SleepFn, call_with_retries

_NOT_FOUND_STATUSES = (400, 404)

# createRecord is not idempotent: a write that timed out may still have landed.
_SINGLE_ATTEMPT = RetryConfig(max_attempts=1)


@dataclass(frozen=True)
class CreatedRecord:
    uri: str
    cid: str


def _error_detail(response: requests.Response | None) -> str:
    if response is None:
        return ""
    try:
        body = response.json()
    except ValueError:
        return (response.text or "").strip()[:500]
    if isinstance(body, Mapping):
        parts = [str(body.get(k)) for k in ("error", "message") if body.get(k)]
        return ": ".join(parts)
    return ""


class XrpcClient:
    """
    Minimal XRPC transport used as the identity resolver, blob store and
    record publisher.

    Session management is the caller's job: pass an already-issued access token.
    Every request carries timeout_seconds so a stalled server cannot block a build.
    """

    def __init__(
        self,
        base_url: str,
        *,
        access_token: str | None = None,
        session: requests.Session | None = None,
        timeout_seconds: float = 30.0,
        retry: RetryConfig | None = None,
        on_retry: OnRetryFn | None = None,
        sleep_fn: SleepFn | None = None,
    ) -> None:
        self._base_url = (base_url or "").strip().rstrip("/")
        self._access_token = (access_token or "").strip() or None
        self._session = session or requests.Session()
        self._timeout = float(timeout_seconds)
        self._retry = retry or RetryConfig()
        self._on_retry = on_retry
        self._sleep_fn = sleep_fn

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        secrets: RuntimeSecrets | None = None,
        *,
        session: requests.Session | None = None,
        on_retry: OnRetryFn | None = None,
    ) -> "XrpcClient":
        return cls(
            config.server.base_url,
            access_token=secrets.access_token if secrets is not None else None,
            session=session,
            timeout_seconds=config.server.timeout_seconds,
            retry=retry_config_from(config),
            on_retry=on_retry,
        )

    def _url(self, nsid: str) -> str:
        return f"{self._base_url}/xrpc/{nsid}"

    def _headers(self, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        if extra:
            headers.update(extra)
        return headers

    def _send(
        self,
        method: str,
        nsid: str,
        *,
        passthrough: tuple[int, ...] = (),
        retry: RetryConfig | None = None,
        **kwargs: Any,
    ) -> requests.Response:
        url = self._url(nsid)

        def _do_request() -> requests.Response:
            response = self._session.request(method, url, timeout=self._timeout, **kwargs)
            if response.status_code not in passthrough:
                response.raise_for_status()
            return response

        return call_with_retries(
            _do_request,
            cfg=retry or self._retry,
            is_retryable=is_retryable_http_exception,
            operation=f"xrpc:{nsid}",
            on_retry=self._on_retry,
            sleep_fn=self._sleep_fn,
            context_url=url,
        )

    def lookup(self, handle: str) -> str | None:
        """Resolve a handle to its DID; None if the server does not know it."""
        nsid = "com.atproto.identity.resolveHandle"
        try:
            response = self._send(
                "GET",
                nsid,
                passthrough=_NOT_FOUND_STATUSES,
                params={"handle": handle},
                headers=self._headers(),
            )
        except requests.HTTPError as e:
            raise ResolutionError(
                f"Handle lookup failed for {handle}: {_error_detail(e.response)}"
            ) from e
        except requests.RequestException as e:
            raise ResolutionError(f"Handle lookup failed for {handle}: {e}") from e

        if response.status_code in _NOT_FOUND_STATUSES:
            return None

        try:
            body = response.json()
        except ValueError as e:
            raise ResolutionError(f"Handle lookup for {handle} returned invalid JSON") from e

        did = body.get("did") if isinstance(body, Mapping) else None
        if not isinstance(did, str) or not did.strip():
            raise ResolutionError(f"Handle lookup for {handle} returned no did: {body!r}")
        return did.strip()

    def upload(self, data: bytes, mime_type: str) -> UploadedImageRef:
        nsid = "com.atproto.repo.uploadBlob"
        try:
            response = self._send(
                "POST",
                nsid,
                data=data,
                headers=self._headers({"Content-Type": mime_type}),
            )
            body = response.json()
        except requests.HTTPError as e:
            raise UploadError(f"Blob upload failed: {_error_detail(e.response)}") from e
        except requests.RequestException as e:
            raise UploadError(f"Blob upload failed: {e}") from e
        except ValueError as e:
            raise UploadError("Blob upload returned invalid JSON") from e

        blob = body.get("blob") if isinstance(body, Mapping) else None
        if not isinstance(blob, Mapping):
            raise UploadError(f"Blob upload response missing blob: {body!r}")

        ref = blob.get("ref")
        link = ref.get("$link") if isinstance(ref, Mapping) else None
        if not isinstance(link, str) or not link:
            raise UploadError(f"Blob upload response missing ref: {blob!r}")

        try:
            size = int(blob.get("size", len(data)))
        except (TypeError, ValueError) as e:
            raise UploadError(f"Blob upload response has invalid size: {blob!r}") from e

        return UploadedImageRef(
            content_ref=link,
            declared_size=size,
            mime_type=str(blob.get("mimeType") or mime_type),
        )

    def create_record(
        self,
        repo: str,
        record: PostRecord | Mapping[str, Any],
        *,
        collection: str = POST_COLLECTION,
    ) -> CreatedRecord:
        """
        Publish an assembled record into repo and return its uri/cid.

        Sent exactly once: retrying could publish the post twice.
        """
        payload_record = record.to_dict() if isinstance(record, PostRecord) else dict(record)
        payload = {
            "repo": repo,
            "collection": collection,
            "record": {"$type": collection, **payload_record},
        }
        nsid = "com.atproto.repo.createRecord"
        try:
            response = self._send(
                "POST",
                nsid,
                retry=_SINGLE_ATTEMPT,
                json=payload,
                headers=self._headers(),
            )
            body = response.json()
        except requests.HTTPError as e:
            raise PublishError(f"createRecord failed: {_error_detail(e.response)}") from e
        except requests.RequestException as e:
            raise PublishError(f"createRecord failed: {e}") from e
        except ValueError as e:
            raise PublishError("createRecord returned invalid JSON") from e

        uri = body.get("uri") if isinstance(body, Mapping) else None
        cid = body.get("cid") if isinstance(body, Mapping) else None
        if not isinstance(uri, str) or not uri:
            raise PublishError(f"createRecord response missing uri: {body!r}")
        return CreatedRecord(uri=uri, cid=str(cid or ""))
