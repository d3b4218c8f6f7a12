from fastapi import APIRouter
from fastapi.responses import Response

from src.api.core.dependencies import MetricsDep

router = APIRouter(tags=["metrics"])


@router.get("/metrics", include_in_schema=False)
async def metrics_endpoint(metrics: MetricsDep) -> Response:
    """Prometheus scrape endpoint."""
    payload, content_type = metrics.render()
    return Response(content=payload, media_type=content_type)
