"""
Experiments API
A/B comparison of two conversion rates.

Endpoints:
    POST /api/experiments/compare → two-proportion z-test
"""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict

from ..services import AlertDispatcher, get_dispatcher

router = APIRouter(prefix="/experiments", tags=["Experiments"])


class CompareRequest(BaseModel):
    success_a: int
    total_a: int
    success_b: int
    total_b: int

    model_config = ConfigDict(json_schema_extra={
        "example": {"success_a": 120, "total_a": 1000, "success_b": 150, "total_b": 1000}
    })


@router.post("/compare")
async def compare_variants(request: CompareRequest, dispatcher: AlertDispatcher = Depends(get_dispatcher)):
    try:
        result = dispatcher.compare_variants(
            request.success_a, request.total_a, request.success_b, request.total_b
        )
    except ValueError as e:
        raise HTTPException(400, str(e))

    return {"input": request.model_dump(), **result.to_dict()}
