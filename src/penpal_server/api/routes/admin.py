"""Administrator endpoints: dispute review, cancellation review, flags, sweep."""

import logging
from typing import Annotated, Literal

from fastapi import APIRouter, Depends

from penpal_server.api.auth import require_admin
from penpal_server.api.models import (
    AdjudicateRequest,
    AdminFlagResponse,
    CancelRequestResponse,
    ProofEntryResponse,
    ResolveDisputeRequest,
    SweepReportResponse,
)
from penpal_server.exchange.errors import NotAdministrator
from penpal_server.services.letter_exchange import LetterExchangeService

logger = logging.getLogger(__name__)

AdminId = Annotated[str, Depends(require_admin)]


def router(service: LetterExchangeService) -> APIRouter:
    """Build the admin router around ``service``."""
    api = APIRouter(prefix="/admin")

    def ensure_admin(admin_id: str) -> None:
        if not service.is_administrator(admin_id):
            raise NotAdministrator()

    @api.get("/disputes", response_model=list[ProofEntryResponse])
    def list_disputes(admin_id: AdminId):
        ensure_admin(admin_id)
        return [ProofEntryResponse.model_validate(p) for p in service.list_disputed_entries()]

    @api.post("/disputes/{match_id}/{step_number}/resolve", response_model=ProofEntryResponse)
    def resolve_dispute(
        match_id: str, step_number: int, request: ResolveDisputeRequest, admin_id: AdminId
    ):
        proof = service.resolve_dispute(match_id, step_number, request.outcome, admin_id)
        return ProofEntryResponse.model_validate(proof)

    @api.get("/cancel-requests", response_model=list[CancelRequestResponse])
    def list_cancel_requests(admin_id: AdminId):
        ensure_admin(admin_id)
        return [
            CancelRequestResponse.model_validate(r) for r in service.list_pending_cancellations()
        ]

    @api.post("/cancel-requests/{request_id}/adjudicate", response_model=CancelRequestResponse)
    def adjudicate(request_id: int, request: AdjudicateRequest, admin_id: AdminId):
        decided = service.adjudicate_cancellation(request_id, request.decision, admin_id)
        return CancelRequestResponse.model_validate(decided)

    @api.get("/flags", response_model=list[AdminFlagResponse])
    def list_flags(admin_id: AdminId, status: Literal["pending", "resolved"] | None = None):
        ensure_admin(admin_id)
        return [AdminFlagResponse.model_validate(f) for f in service.list_admin_flags(status)]

    @api.post("/sweep", response_model=SweepReportResponse)
    def run_sweep(admin_id: AdminId):
        """Run one timeout sweep now."""
        ensure_admin(admin_id)
        report = service.run_sweep()
        logger.info("Manual sweep by %s: %s", admin_id, report.as_dict())
        return SweepReportResponse(**report.as_dict())

    return api
