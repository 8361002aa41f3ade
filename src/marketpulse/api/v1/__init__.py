from fastapi import APIRouter

from .endpoints import aggregation, catalog, events, metrics, observability, rankings

router = APIRouter()
router.include_router(events.router)
router.include_router(metrics.router)
router.include_router(rankings.router)
router.include_router(aggregation.router)
router.include_router(catalog.router)
router.include_router(observability.router)
