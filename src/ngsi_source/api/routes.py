# ngsi_source/api/routes.py
"""
Health, status and preference endpoints of the runtime service.
"""
from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request

from ngsi_source.api.schemas import OperatorStatus, PreferencesUpdate, PreferencesUpdateResult
from ngsi_source.contracts.host import ENTITY_OUTPUT, METADATA_OUTPUT, NORMALIZED_OUTPUT

router = APIRouter()

_OUTPUTS = (ENTITY_OUTPUT, NORMALIZED_OUTPUT, METADATA_OUTPUT)


@router.get("/health")
async def health(request: Request) -> dict:
    operator = request.app.state.operator
    return {"status": "healthy", "state": operator.state.value}


@router.get("/status", response_model=OperatorStatus)
async def status(request: Request) -> OperatorStatus:
    operator = request.app.state.operator
    outputs = request.app.state.outputs
    task = operator.query_task
    return OperatorStatus(
        state=operator.state.value,
        subscription_id=operator.subscription_id,
        connected_outputs=[name for name in _OUTPUTS if outputs.is_connected(name)],
        config=operator.config.model_dump() if operator.config else None,
        query_running=task is not None and not task.done(),
    )


@router.get("/preferences")
async def get_preferences(request: Request) -> dict:
    return request.app.state.preferences.as_dict()


@router.put("/preferences", response_model=PreferencesUpdateResult)
async def update_preferences(
    body: PreferencesUpdate, request: Request
) -> PreferencesUpdateResult:
    """Apply a partial update; a real change restarts the subscription cycle."""
    try:
        changed = await request.app.state.preferences.update(
            body.model_dump(exclude_none=True)
        )
    except KeyError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return PreferencesUpdateResult(changed=changed)
