"""
Deployments API
Deployment notifications and impact analysis.

Endpoints:
    POST /api/deployments                  → Record a deployment
    GET  /api/deployments                  → List deployments
    GET  /api/deployments/{id}             → Get one deployment
    GET  /api/deployments/{id}/impact      → Impact report
    GET  /api/deployments/{id}/events      → FireEvents in the analysis window
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ValidationError

from ..core import Deployment
from ..exceptions import NotFoundError
from ..services import AlertDispatcher, get_dispatcher

router = APIRouter(prefix="/deployments", tags=["Deployments"])


class DeploymentRequest(BaseModel):
    """Deployment notification from CI/CD"""
    id: str
    timestamp: Optional[datetime] = None
    environment: str = "production"
    version: str = ""
    features: List[str] = []


@router.post("")
async def record_deployment(request: DeploymentRequest, dispatcher: AlertDispatcher = Depends(get_dispatcher)):
    try:
        deployment = Deployment(
            id=request.id,
            timestamp=request.timestamp,
            environment=request.environment,
            version=request.version,
            features=frozenset(request.features),
        )
    except ValidationError as e:
        raise HTTPException(400, str(e))

    recorded = dispatcher.record_deployment(deployment)
    return {"message": "Deployment recorded", "deployment": recorded.to_dict()}


@router.get("")
async def list_deployments(dispatcher: AlertDispatcher = Depends(get_dispatcher)):
    deployments = dispatcher.ingestion.get_deployments()
    return {
        "count": len(deployments),
        "deployments": [d.to_dict() for d in deployments]
    }


@router.get("/{deployment_id}")
async def get_deployment(deployment_id: str, dispatcher: AlertDispatcher = Depends(get_dispatcher)):
    try:
        deployment = dispatcher.get_deployment(deployment_id)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    return {"deployment": deployment.to_dict()}


@router.get("/{deployment_id}/impact")
async def analyze_deployment(deployment_id: str, dispatcher: AlertDispatcher = Depends(get_dispatcher)):
    """Before/after impact report for a deployment"""
    try:
        report = dispatcher.analyze_deployment(deployment_id)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    return report.to_dict()


@router.get("/{deployment_id}/events")
async def deployment_events(deployment_id: str, dispatcher: AlertDispatcher = Depends(get_dispatcher)):
    try:
        events = dispatcher.events_for_deployment(deployment_id)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    return {
        "deployment_id": deployment_id,
        "count": len(events),
        "events": [e.to_dict() for e in events]
    }
