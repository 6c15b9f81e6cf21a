from fastapi import Depends, Request
from jose import JWTError
from pydantic import ValidationError

from app.zeus.core.context import RequestContext, anonymous_context, build_request_context
from app.zeus.core.error_catalog import AppError, ErrorCatalog
from app.zeus.core.security import TokenData, decode_token, is_admin_role, oauth2_scheme
from app.zeus.services.feature_toggles import FeatureAdministrator, FeatureEvaluator


def get_optional_token_data(token: str | None = Depends(oauth2_scheme)) -> TokenData | None:
    if token is None:
        return None
    try:
        payload = decode_token(token)
        return TokenData(**payload)
    except (JWTError, ValidationError, TypeError) as exc:
        raise AppError(ErrorCatalog.INVALID_TOKEN) from exc


def get_current_token_data(token_data: TokenData | None = Depends(get_optional_token_data)) -> TokenData:
    if token_data is None:
        raise AppError(ErrorCatalog.INVALID_TOKEN)
    return token_data


def _context_from_token(request: Request, token_data: TokenData) -> RequestContext:
    context = build_request_context(
        user_id=token_data.username or token_data.sub,
        role=token_data.role,
        groups=token_data.groups,
        is_admin=is_admin_role(token_data.role),
        trace_id=getattr(request.state, "trace_id", ""),
    )
    request.state.user_id = context.user_id
    request.state.context = context
    return context


def get_caller_context(
    request: Request,
    token_data: TokenData | None = Depends(get_optional_token_data),
) -> RequestContext:
    if token_data is None:
        return anonymous_context(request)
    return _context_from_token(request, token_data)


def require_admin_context(
    request: Request,
    token_data: TokenData = Depends(get_current_token_data),
) -> RequestContext:
    context = _context_from_token(request, token_data)
    if not context.is_admin:
        raise AppError(ErrorCatalog.PERMISSION_DENIED)
    return context


def get_feature_evaluator(request: Request) -> FeatureEvaluator:
    return request.app.state.feature_evaluator


def get_feature_administrator(request: Request) -> FeatureAdministrator:
    return request.app.state.feature_administrator


__all__ = [
    "get_optional_token_data",
    "get_current_token_data",
    "get_caller_context",
    "require_admin_context",
    "get_feature_evaluator",
    "get_feature_administrator",
]
