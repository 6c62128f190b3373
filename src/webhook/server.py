from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import Any, Dict

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError

from .mutator import Mutator, build_mutator
from .review import AdmissionResponse, AdmissionReview

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(
        title="PVC Webhook",
        description="Mutating admission webhook that backs emptyDir volumes with PersistentVolumeClaims.",
        version="0.1.0",
    )

    @app.post("/mutate")
    async def mutate(request: Request, mutator: Mutator = Depends(get_mutator)) -> JSONResponse:
        raw = await request.body()
        try:
            review = AdmissionReview.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("Undecodable AdmissionReview: %s", exc)
            return _review_response(
                AdmissionReview(response=AdmissionResponse.deny(_uid_hint(raw), f"decode review: {exc}"))
            )
        if review.request is None:
            return _review_response(
                AdmissionReview(
                    apiVersion=review.apiVersion,
                    response=AdmissionResponse.deny("", "decode review: request is missing"),
                )
            )
        response = mutator.mutate(review.request)
        return _review_response(AdmissionReview(apiVersion=review.apiVersion, response=response))

    @app.get("/healthz", response_class=PlainTextResponse)
    def healthz() -> str:
        return "ok"

    return app


@lru_cache()
def get_mutator() -> Mutator:
    return build_mutator()


def _review_response(review: AdmissionReview) -> JSONResponse:
    # Admission outcome travels in response.allowed; transport status is always 200.
    return JSONResponse(status_code=200, content=review.to_dict())


def _uid_hint(raw: bytes) -> str:
    try:
        data: Dict[str, Any] = json.loads(raw)
    except ValueError:
        return ""
    request = data.get("request") if isinstance(data, dict) else None
    uid = request.get("uid") if isinstance(request, dict) else None
    return uid if isinstance(uid, str) else ""


app = create_app()


__all__ = [
    "app",
    "create_app",
    "get_mutator",
]
