"""Unit tests for the audit log writer.

The autouse ``audit_tmp_dir`` fixture in ``conftest.py`` redirects
``penpal_server.audit.writer._AUDIT_ROOT`` to ``tmp_path / "audit"`` so no
test ever touches the real ``data/audit/`` directory.

Test organisation
-----------------
- :class:`TestAppendEvent`     happy path and argument validation.
- :class:`TestEnvelope`        envelope fields and checksum.
- :class:`TestVerifyAuditLog`  ok / empty / corrupt branches.
- :class:`TestServiceAudit`    what the exchange service writes after commit.
"""

from __future__ import annotations

import hashlib
import json
from datetime import UTC, datetime
from pathlib import Path

import pytest

import penpal_server.audit.writer as _writer
from penpal_server.audit import AuditWriteError, append_event, verify_audit_log
from penpal_server.exchange.errors import NotYourTurn
from tests.constants import ALICE, BOB, SENT_PHOTO
from tests.helpers import exchange_step


def _audit_file(match_id: str, audit_root: Path) -> Path:
    return audit_root / f"{match_id}.jsonl"


def _all_lines(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


# ── TestAppendEvent ───────────────────────────────────────────────────────────


class TestAppendEvent:
    def test_creates_file_when_absent(self, audit_tmp_dir: Path) -> None:
        """The audit directory and ``<match_id>.jsonl`` are created on first write."""
        path = _audit_file("m1", audit_tmp_dir)
        assert not path.exists()

        append_event("m1", "letter.sent", {"step_number": 1})

        assert path.exists()

    def test_returns_32_char_hex_event_id(self) -> None:
        event_id = append_event("m1", "letter.sent", {})

        assert len(event_id) == 32
        int(event_id, 16)

    def test_one_line_per_event(self, audit_tmp_dir: Path) -> None:
        for step in range(1, 4):
            append_event("m1", "letter.sent", {"step_number": step})

        lines = _all_lines(_audit_file("m1", audit_tmp_dir))
        assert [line["data"]["step_number"] for line in lines] == [1, 2, 3]

    @pytest.mark.parametrize("match_id", ["", "   "])
    def test_blank_match_id(self, match_id: str) -> None:
        with pytest.raises(ValueError, match="match_id"):
            append_event(match_id, "letter.sent", {})

    def test_blank_event_type(self) -> None:
        with pytest.raises(ValueError, match="event_type"):
            append_event("m1", "", {})

    def test_unwritable_root_raises_audit_write_error(self, audit_tmp_dir: Path) -> None:
        """A plain file where the audit directory should be blocks ``mkdir``."""
        audit_tmp_dir.parent.mkdir(parents=True, exist_ok=True)
        audit_tmp_dir.write_text("not a directory")

        with pytest.raises(AuditWriteError):
            append_event("m1", "letter.sent", {})


# ── TestEnvelope ──────────────────────────────────────────────────────────────


class TestEnvelope:
    def test_fields_and_explicit_timestamp(self, audit_tmp_dir: Path) -> None:
        at = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)
        event_id = append_event("m1", "letter.received", {"step_number": 2}, timestamp=at)

        (envelope,) = _all_lines(_audit_file("m1", audit_tmp_dir))
        assert envelope["event_id"] == event_id
        assert envelope["timestamp"] == at.isoformat()
        assert envelope["match_id"] == "m1"
        assert envelope["event_type"] == "letter.received"
        assert envelope["schema_version"] == "1.0"
        assert envelope["data"] == {"step_number": 2}

    def test_checksum_covers_body(self, audit_tmp_dir: Path) -> None:
        """Strip ``_checksum``, serialise with sorted keys, hash: must match."""
        append_event("m1", "letter.sent", {"x": 1})
        (envelope,) = _all_lines(_audit_file("m1", audit_tmp_dir))

        body = {k: v for k, v in envelope.items() if k != "_checksum"}
        canonical = json.dumps(body, ensure_ascii=False, sort_keys=True)
        expected = "sha256:" + hashlib.sha256(canonical.encode("utf-8")).hexdigest()
        assert envelope["_checksum"] == expected

    def test_datetimes_in_data_are_stringified(self, audit_tmp_dir: Path) -> None:
        at = datetime(2026, 3, 2, tzinfo=UTC)
        append_event("m1", "letter.auto_verified", {"received_at": at})

        (envelope,) = _all_lines(_audit_file("m1", audit_tmp_dir))
        assert envelope["data"]["received_at"] == str(at)
        assert verify_audit_log("m1").status == "ok"

    def test_checksum_independent_of_key_order(self) -> None:
        assert _writer._compute_checksum({"b": 2, "a": 1}) == _writer._compute_checksum(
            {"a": 1, "b": 2}
        )


# ── TestVerifyAuditLog ────────────────────────────────────────────────────────


class TestVerifyAuditLog:
    def test_missing_file_is_empty(self) -> None:
        result = verify_audit_log("nothing-here")

        assert result.status == "empty"
        assert result.last_event_id is None

    def test_blank_file_is_empty(self, audit_tmp_dir: Path) -> None:
        audit_tmp_dir.mkdir(parents=True)
        _audit_file("m1", audit_tmp_dir).write_text("\n\n", encoding="utf-8")

        assert verify_audit_log("m1").status == "empty"

    def test_ok_refers_to_last_event(self) -> None:
        for _ in range(3):
            last_id = append_event("m1", "letter.sent", {})

        result = verify_audit_log("m1")
        assert result.status == "ok"
        assert result.last_event_id == last_id

    def test_truncated_last_line_is_corrupt(self, audit_tmp_dir: Path) -> None:
        """A crash mid-write leaves a partial JSON line."""
        audit_tmp_dir.mkdir(parents=True)
        _audit_file("m1", audit_tmp_dir).write_text(
            '{"event_id": "abc"}\n{"truncated": true, "no_clos', encoding="utf-8"
        )

        result = verify_audit_log("m1")
        assert result.status == "corrupt"
        assert result.error_detail is not None

    def test_tampered_data_is_corrupt(self, audit_tmp_dir: Path) -> None:
        append_event("m1", "letter.sent", {"step_number": 1})
        path = _audit_file("m1", audit_tmp_dir)
        (envelope,) = _all_lines(path)
        envelope["data"]["step_number"] = 2
        path.write_text(json.dumps(envelope) + "\n", encoding="utf-8")

        result = verify_audit_log("m1")
        assert result.status == "corrupt"
        assert "mismatch" in (result.error_detail or "").lower()

    def test_non_object_line_is_corrupt(self, audit_tmp_dir: Path) -> None:
        audit_tmp_dir.mkdir(parents=True)
        _audit_file("m1", audit_tmp_dir).write_text("[1, 2, 3]\n", encoding="utf-8")

        assert verify_audit_log("m1").status == "corrupt"


# ── TestServiceAudit ──────────────────────────────────────────────────────────


@pytest.mark.db
class TestServiceAudit:
    def test_committed_transitions_are_logged_in_order(
        self, service, active_match, audit_tmp_dir: Path
    ) -> None:
        exchange_step(service, active_match.id, 1)

        types = [e["event_type"] for e in _all_lines(_audit_file(active_match.id, audit_tmp_dir))]
        assert types[:2] == ["match.created", "match.activated"]
        assert types[2:] == ["letter.sent", "letter.received", "mission.progress"]
        assert verify_audit_log(active_match.id).status == "ok"

    def test_rejected_operation_writes_nothing(
        self, service, active_match, audit_tmp_dir: Path
    ) -> None:
        path = _audit_file(active_match.id, audit_tmp_dir)
        before = path.read_text(encoding="utf-8")

        with pytest.raises(NotYourTurn):
            service.submit_send(active_match.id, BOB, SENT_PHOTO)

        assert path.read_text(encoding="utf-8") == before

    def test_audit_failure_does_not_undo_transition(
        self, service, active_match, audit_tmp_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def broken(*args, **kwargs):
            raise AuditWriteError("disk full")

        monkeypatch.setattr("penpal_server.services.letter_exchange.append_event", broken)

        proof = service.submit_send(active_match.id, ALICE, SENT_PHOTO)

        assert proof.status == "sent"
        assert len(service.list_proof_entries(active_match.id)) == 1
