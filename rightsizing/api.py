"""
FastAPI application for the Right-Sizing Operator.

Provides:
- Health and readiness probes
- Prometheus metrics
- Component status and manual reconcile trigger
- Validation and rule preview endpoints
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, FastAPI, HTTPException
from pydantic import BaseModel

from . import __version__
from .component import COMPONENTS
from .config import settings
from .controller import AnalyticsController, get_controller
from .errors import ConfigValidationError, ReconcileError
from .metrics import get_metrics_response, metrics_middleware, rs_info
from .models import ComponentType, RightSizingConfig
from .rules import generate, render_yaml
from .validation import validate_all_components, validate_config_data

logger = structlog.get_logger(__name__)


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    timestamp: str
    components: Dict[str, str]


class ComponentStatus(BaseModel):
    component: str
    namespace: str
    enabled: bool
    configmap: str


class ConfigValidationResponse(BaseModel):
    valid: bool
    error: Optional[str] = None


class ValidationIssueResponse(BaseModel):
    component: Optional[str] = None
    field: str
    message: str


class ValidationResponse(BaseModel):
    valid: bool
    errors: List[ValidationIssueResponse]
    summary: str


class RulePreviewResponse(BaseModel):
    component: str
    rule: Dict[str, Any]
    yaml: str


# =============================================================================
# APPLICATION STATE
# =============================================================================


class AppState:
    """Global application state."""

    def __init__(self):
        self.controller: Optional[AnalyticsController] = None


app_state = AppState()


def _controller() -> AnalyticsController:
    if app_state.controller is None:
        app_state.controller = get_controller()
    return app_state.controller


# =============================================================================
# LIFECYCLE
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management."""
    logger.info("Starting Right-Sizing Operator", host=settings.host, port=settings.port)

    controller = _controller()
    await controller.start()

    yield

    await controller.stop()
    logger.info("Right-Sizing Operator stopped")


# =============================================================================
# FASTAPI APP
# =============================================================================


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="Right-Sizing Operator API",
        description="Right-sizing recommendation rules for managed clusters",
        version=__version__,
        lifespan=lifespan,
    )

    metrics_middleware(app)

    app.include_router(health_router)
    app.include_router(metrics_router)
    app.include_router(components_router)
    app.include_router(validation_router)

    return app


# =============================================================================
# HEALTH ROUTES
# =============================================================================

health_router = APIRouter(tags=["Health"])


@health_router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    rs_info.info({"version": __version__, "namespace": settings.default_namespace})

    controller = app_state.controller
    return HealthResponse(
        status="healthy",
        version=__version__,
        timestamp=datetime.now(timezone.utc).isoformat(),
        components={
            "controller": "running" if controller and controller.started else "not_started",
            "last_reconcile": "error" if controller and controller.last_error else "ok",
        },
    )


@health_router.get("/ready")
async def readiness_check():
    """Readiness probe for Kubernetes."""
    if not app_state.controller or not app_state.controller.started:
        raise HTTPException(status_code=503, detail="Controller not started")
    return {"status": "ready"}


@health_router.get("/live")
async def liveness_check():
    """Liveness probe for Kubernetes."""
    return {"status": "alive"}


# =============================================================================
# METRICS ROUTES
# =============================================================================

metrics_router = APIRouter(tags=["Metrics"])


@metrics_router.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return get_metrics_response()


# =============================================================================
# COMPONENT ROUTES
# =============================================================================

components_router = APIRouter(prefix="/api/v1", tags=["Components"])


@components_router.get("/components", response_model=List[ComponentStatus])
async def list_components():
    """Committed state of every right-sizing component."""
    controller = _controller()
    statuses = []
    for component_type, component_controller in controller.components.items():
        state = component_controller.snapshot()
        statuses.append(
            ComponentStatus(
                component=component_type.value,
                namespace=state.namespace,
                enabled=state.enabled,
                configmap=COMPONENTS[component_type].configmap_name,
            )
        )
    return statuses


@components_router.post("/reconcile")
async def trigger_reconcile():
    """Run one reconciliation pass immediately."""
    try:
        reconciled = await _controller().reconcile()
    except ReconcileError as e:
        raise HTTPException(
            status_code=500,
            detail={"message": str(e), "components": sorted(e.failures)},
        )
    return {"reconciled": reconciled}


@components_router.post("/rules/{component}/preview", response_model=RulePreviewResponse)
async def preview_rule(component: ComponentType, cfg: RightSizingConfig):
    """Render the PrometheusRule a configuration would produce."""
    try:
        rule = generate(cfg, COMPONENTS[component])
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return RulePreviewResponse(component=component.value, rule=rule, yaml=render_yaml(rule))


# =============================================================================
# VALIDATION ROUTES
# =============================================================================

validation_router = APIRouter(prefix="/api/v1/validate", tags=["Validation"])


@validation_router.post("", response_model=ValidationResponse)
async def validate_mco(mco: Dict[str, Any]):
    """Validate a MultiClusterObservability document."""
    result = validate_all_components(mco)
    body = result.to_dict()
    return ValidationResponse(
        valid=body["valid"],
        errors=[ValidationIssueResponse(**issue) for issue in body["errors"]],
        summary=result.summary(),
    )


@validation_router.post("/config", response_model=ConfigValidationResponse)
async def validate_config(cfg: RightSizingConfig):
    """Validate ConfigMap data for any component."""
    try:
        validate_config_data(cfg)
    except ConfigValidationError as e:
        return ConfigValidationResponse(valid=False, error=str(e))
    return ConfigValidationResponse(valid=True)


# =============================================================================
# ENTRY POINT
# =============================================================================

app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "rightsizing.api:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level,
    )
