"""Evidence blob store client.

Photos of posted and received letters live in an external blob store; the
ledger only keeps the URL it hands back. Uploads happen before any
transaction is opened, so a failed upload never leaves a partial record.
"""

from __future__ import annotations

import logging
from typing import BinaryIO, Protocol

import requests

from penpal_server.exchange.errors import EvidenceUploadFailed

logger = logging.getLogger(__name__)


class BlobStore(Protocol):
    def upload_evidence(
        self, file: BinaryIO | bytes, *, filename: str, content_type: str
    ) -> str: ...


class HttpBlobStore:
    """Multipart upload to an HTTP endpoint that answers ``{"url": ...}``."""

    def __init__(
        self,
        upload_url: str,
        *,
        timeout_seconds: float = 15.0,
        session: requests.Session | None = None,
    ) -> None:
        self.upload_url = upload_url
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()

    def upload_evidence(
        self, file: BinaryIO | bytes, *, filename: str, content_type: str = "image/jpeg"
    ) -> str:
        try:
            response = self.session.post(
                self.upload_url,
                files={"file": (filename, file, content_type)},
                timeout=self.timeout_seconds,
            )
            if response.status_code not in (200, 201):
                raise EvidenceUploadFailed(
                    f"Evidence upload returned HTTP {response.status_code}."
                )
            body = response.json()
        except requests.exceptions.RequestException as exc:
            logger.warning("Evidence upload request failed: %s", exc)
            raise EvidenceUploadFailed() from exc
        except ValueError as exc:
            logger.warning("Evidence upload returned invalid JSON.")
            raise EvidenceUploadFailed("Evidence upload returned invalid JSON.") from exc

        url = body.get("url") if isinstance(body, dict) else None
        if not isinstance(url, str) or not url.strip():
            raise EvidenceUploadFailed("Evidence upload did not return a URL.")
        return url.strip()


def build_blob_store(upload_url: str = "", timeout_seconds: float = 15.0) -> BlobStore | None:
    if not upload_url.strip():
        return None
    return HttpBlobStore(upload_url.strip(), timeout_seconds=timeout_seconds)
