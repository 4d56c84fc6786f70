"""Tests for the evidence blob store client and upload-then-record helpers."""

from unittest.mock import Mock

import pytest
import requests

from penpal_server.exchange.errors import EvidenceUploadFailed
from penpal_server.exchange.evidence import HttpBlobStore, build_blob_store
from tests.constants import ALICE, BOB


def _store(response=None, side_effect=None) -> tuple[HttpBlobStore, Mock]:
    session = Mock()
    session.post.return_value = response
    session.post.side_effect = side_effect
    return HttpBlobStore("https://blobs.example.org/upload", session=session), session


def _response(status_code=200, body=None):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = body if body is not None else {}
    return response


@pytest.mark.unit
class TestHttpBlobStore:
    def test_upload_returns_url(self):
        store, session = _store(_response(201, {"url": " https://blobs.example.org/x.jpg "}))

        url = store.upload_evidence(b"jpeg-bytes", filename="x.jpg", content_type="image/jpeg")

        assert url == "https://blobs.example.org/x.jpg"
        kwargs = session.post.call_args.kwargs
        assert kwargs["files"] == {"file": ("x.jpg", b"jpeg-bytes", "image/jpeg")}
        assert kwargs["timeout"] == 15.0

    @pytest.mark.parametrize("status_code", [400, 413, 500])
    def test_error_status(self, status_code):
        store, _ = _store(_response(status_code))

        with pytest.raises(EvidenceUploadFailed, match=str(status_code)):
            store.upload_evidence(b"x", filename="x.jpg", content_type="image/jpeg")

    def test_network_failure(self):
        store, _ = _store(side_effect=requests.exceptions.ConnectionError("refused"))

        with pytest.raises(EvidenceUploadFailed):
            store.upload_evidence(b"x", filename="x.jpg", content_type="image/jpeg")

    def test_invalid_json(self):
        response = _response(200)
        response.json.side_effect = ValueError("not json")
        store, _ = _store(response)

        with pytest.raises(EvidenceUploadFailed, match="invalid JSON"):
            store.upload_evidence(b"x", filename="x.jpg", content_type="image/jpeg")

    @pytest.mark.parametrize("body", [{}, {"url": ""}, {"url": 5}, ["https://x"]])
    def test_missing_url(self, body):
        store, _ = _store(_response(200, body))

        with pytest.raises(EvidenceUploadFailed, match="did not return a URL"):
            store.upload_evidence(b"x", filename="x.jpg", content_type="image/jpeg")

    def test_build_without_url_disables_uploads(self):
        assert build_blob_store("") is None
        assert isinstance(build_blob_store("https://blobs.example.org"), HttpBlobStore)


class FakeBlobStore:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.uploads: list[str] = []

    def upload_evidence(self, file, *, filename, content_type):
        if self.fail:
            raise EvidenceUploadFailed()
        self.uploads.append(filename)
        return f"https://blobs.example.org/{filename}"


@pytest.mark.db
class TestUploadHelpers:
    def test_upload_then_send_and_confirm(self, service, active_match):
        service.blob_store = FakeBlobStore()

        sent = service.submit_send_with_upload(active_match.id, ALICE, b"...", filename="s1.jpg")
        received = service.confirm_receive_with_upload(
            active_match.id, 1, BOB, b"...", filename="r1.jpg"
        )

        assert sent.sender_evidence_ref == "https://blobs.example.org/s1.jpg"
        assert received.receiver_evidence_ref == "https://blobs.example.org/r1.jpg"
        assert service.get_mission_state(active_match.id).current_step == 1

    def test_failed_upload_records_nothing(self, service, active_match):
        service.blob_store = FakeBlobStore(fail=True)

        with pytest.raises(EvidenceUploadFailed):
            service.submit_send_with_upload(active_match.id, ALICE, b"...", filename="s1.jpg")

        assert service.list_proof_entries(active_match.id) == []

    def test_unconfigured_store(self, service, active_match):
        service.blob_store = None

        with pytest.raises(EvidenceUploadFailed, match="not configured"):
            service.submit_send_with_upload(active_match.id, ALICE, b"...", filename="s1.jpg")
