"""Reputation and points read endpoints consumed by matchmaking."""

from fastapi import APIRouter

from penpal_server.api.models import PointsResponse, ReputationResponse, ScoreResponse
from penpal_server.services.letter_exchange import LetterExchangeService


def router(service: LetterExchangeService) -> APIRouter:
    api = APIRouter(prefix="/reputation")

    @api.get("/{user_id}", response_model=ReputationResponse)
    def get_reputation(user_id: str):
        return ReputationResponse.model_validate(service.get_reputation(user_id))

    @api.get("/{user_id}/score", response_model=ScoreResponse)
    def get_score(user_id: str):
        return ScoreResponse(user_id=user_id, score=service.get_score(user_id))

    @api.get("/{user_id}/points", response_model=PointsResponse)
    def get_points(user_id: str):
        return PointsResponse.model_validate(service.get_points(user_id))

    return api
