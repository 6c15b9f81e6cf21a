from fastapi import APIRouter, Depends, Query, Request

from app.zeus.core.config import settings
from app.zeus.core.context import RequestContext
from app.zeus.core.deps import (
    get_caller_context,
    get_feature_administrator,
    get_feature_evaluator,
    require_admin_context,
)
from app.zeus.schemas.errors import ERROR_RESPONSES
from app.zeus.schemas.features import (
    FeatureEvaluationResponse,
    FeatureItem,
    FeatureListResponse,
    FeatureResponse,
    FeatureUpdateRequest,
)
from app.zeus.services.feature_toggles import evaluate_with_fallback

router = APIRouter()


def _trace_id(request: Request) -> str:
    return getattr(request.state, "trace_id", "")


def _feature_response(request: Request, record) -> FeatureResponse:
    return FeatureResponse(**FeatureItem.from_record(record).model_dump(), trace_id=_trace_id(request))


@router.get(
    "/features/{feature_key}/allowed",
    response_model=FeatureEvaluationResponse,
    responses={401: ERROR_RESPONSES[401], 503: ERROR_RESPONSES[503]},
)
def feature_allowed(
    request: Request,
    feature_key: str,
    context: RequestContext = Depends(get_caller_context),
    evaluator=Depends(get_feature_evaluator),
):
    decision = evaluate_with_fallback(
        evaluator,
        feature_key,
        caller_is_admin=context.is_admin,
        caller_groups=context.groups,
        fallback=settings.FEATURE_EVALUATION_FALLBACK,
    )
    return FeatureEvaluationResponse(
        feature_key=decision.key,
        allowed=decision.allowed,
        source=decision.source,
        trace_id=_trace_id(request),
    )


@router.get("/admin/features", response_model=FeatureListResponse, responses=ERROR_RESPONSES)
def list_features(
    request: Request,
    limit: int = Query(50, ge=1),
    offset: int = Query(0, ge=0),
    _context: RequestContext = Depends(require_admin_context),
    administrator=Depends(get_feature_administrator),
):
    limit = min(limit, settings.ADMIN_LIST_MAX_PAGE_SIZE)
    records, total = administrator.list_features(limit=limit, offset=offset)
    return FeatureListResponse(
        items=[FeatureItem.from_record(record) for record in records],
        total=total,
        limit=limit,
        offset=offset,
        trace_id=_trace_id(request),
    )


@router.get("/admin/features/{feature_key}", response_model=FeatureResponse, responses=ERROR_RESPONSES)
def get_feature(
    request: Request,
    feature_key: str,
    _context: RequestContext = Depends(require_admin_context),
    administrator=Depends(get_feature_administrator),
):
    return _feature_response(request, administrator.get_feature(feature_key))


@router.put("/admin/features/{feature_key}", response_model=FeatureResponse, responses=ERROR_RESPONSES)
def update_feature(
    request: Request,
    feature_key: str,
    payload: FeatureUpdateRequest,
    context: RequestContext = Depends(require_admin_context),
    administrator=Depends(get_feature_administrator),
):
    options = {}
    if "description" in payload.model_fields_set:
        options["description"] = payload.description
    record = administrator.update_feature(
        feature_key,
        enabled=payload.enabled,
        groups=payload.groups,
        operator=context.operator,
        **options,
    )
    return _feature_response(request, record)
