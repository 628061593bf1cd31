"""FastAPI application exposing the audit pipeline."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import replace
from typing import Any, Dict, List

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request

from .logging import get_logger
from .normalizer import normalize_all
from .pipeline import audit_page, canonicalize_document
from .runtime import Runtime, build_runtime

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.runtime = build_runtime()
    yield


def get_runtime(request: Request) -> Runtime:
    runtime: Runtime = request.app.state.runtime
    return runtime


def create_app() -> FastAPI:
    api = FastAPI(title="Grid Audit Service", version="1.5.0", lifespan=lifespan)

    @api.get("/health")
    def health(runtime: Runtime = Depends(get_runtime)) -> dict:
        return {
            "status": "healthy",
            "pipeline_version": runtime.config.pipeline_version,
            "spec_version": runtime.config.spec_version,
        }

    @api.post("/audit")
    def audit(
        payload: Dict[str, Any] = Body(...),
        promote: bool = Query(False, description="Allow header-band promotion of echo pointers"),
        runtime: Runtime = Depends(get_runtime),
    ) -> dict:
        """Validate one page: body is ``{spatial_map, assignments, source_document?, page?}``."""
        if not isinstance(payload.get("spatial_map"), dict):
            logger.warning("audit_rejected", reason="missing_spatial_map")
            raise HTTPException(status_code=422, detail="spatial_map object is required")
        if not isinstance(payload.get("assignments"), (list, dict)):
            logger.warning("audit_rejected", reason="missing_assignments")
            raise HTTPException(status_code=422, detail="assignments list is required")

        policy = runtime.config.header_band_policy
        if promote:
            policy = replace(policy, allow_row_band_promotion=True)
        try:
            page = int(payload.get("page", 0))
        except (TypeError, ValueError) as exc:
            logger.warning("audit_rejected", reason="invalid_page", page=str(payload.get("page")))
            raise HTTPException(status_code=422, detail="page must be an integer") from exc

        package = audit_page(
            payload["spatial_map"],
            payload["assignments"],
            source_document=str(payload.get("source_document", "")),
            page=page,
            header_band_policy=policy,
            config=runtime.config,
        )
        logger.info("audit_served", page=page, overall_status=package.overall_status)
        return package.to_dict()

    @api.post("/canonize")
    def canonize(
        payload: Dict[str, Any] = Body(...),
        runtime: Runtime = Depends(get_runtime),
    ) -> dict:
        """Canonicalize rows: body is ``{blocks: [...], rows: [...]}``."""
        if not isinstance(payload.get("blocks"), list) or not isinstance(payload.get("rows"), list):
            raise HTTPException(status_code=422, detail="blocks and rows lists are required")
        return canonicalize_document(payload["blocks"], payload["rows"], runtime.vocabulary)

    @api.post("/normalize")
    def normalize(texts: List[str] = Body(..., embed=True)) -> dict:
        result = normalize_all(texts)
        return {
            "atoms": [a.to_dict() for a in result.atoms],
            "warnings": [w.to_dict() for w in result.warnings],
        }

    return api
