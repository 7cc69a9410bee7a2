"""
API Routers
"""
from .metrics import router as metrics_router
from .triggers import router as triggers_router
from .deployments import router as deployments_router
from .experiments import router as experiments_router
from .alerts import router as alerts_router
from .export import router as export_router

__all__ = [
    "metrics_router",
    "triggers_router",
    "deployments_router",
    "experiments_router",
    "alerts_router",
    "export_router",
]
