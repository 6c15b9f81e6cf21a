from fastapi import APIRouter, Depends, Request, Response

from app.zeus.core.deps import get_feature_evaluator, require_admin_context
from app.zeus.core.metrics import metrics

router = APIRouter()


@router.get("/metrics")
def get_metrics():
    snapshot = metrics.render()
    return Response(content=snapshot.content, media_type=snapshot.content_type)


@router.get("/zeus/ops/feature-cache")
def feature_cache_stats(
    request: Request,
    _context=Depends(require_admin_context),
    evaluator=Depends(get_feature_evaluator),
):
    stats = evaluator.cache.stats()
    stats.update(
        {
            "ttl_seconds": evaluator.cache.ttl_seconds,
            "max_entries": evaluator.cache.max_entries,
            "trace_id": getattr(request.state, "trace_id", ""),
        }
    )
    return stats
