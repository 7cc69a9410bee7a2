"""
Triggers API
Rule registration and lifecycle.

Endpoints:
    POST   /api/triggers                 → Register a rule
    GET    /api/triggers                 → List rules with state
    GET    /api/triggers/{name}          → Get one rule
    DELETE /api/triggers/{name}          → Remove rule
    POST   /api/triggers/{name}/enable   → Enable rule
    POST   /api/triggers/{name}/disable  → Disable rule
    POST   /api/triggers/reset           → Clear all cooldowns
"""

from fastapi import APIRouter, Depends, HTTPException

from ..alerts import TriggerRuleSpec, TriggerRule
from ..exceptions import ConfigurationError, NotFoundError
from ..services import AlertDispatcher, get_dispatcher

router = APIRouter(prefix="/triggers", tags=["Triggers"])


def _rule_view(dispatcher: AlertDispatcher, rule: TriggerRule) -> dict:
    return {
        **rule.to_dict(),
        "state": dispatcher.triggers.rule_state(rule.name).value,
    }


@router.post("")
async def register_trigger(spec: TriggerRuleSpec, dispatcher: AlertDispatcher = Depends(get_dispatcher)):
    """
    Register a trigger rule.

    Conditions: above, below, equal, change_percent
    Actions: alert, rollback, impact_analysis, log (or none)
    """
    try:
        name = dispatcher.register_trigger(spec)
    except ConfigurationError as e:
        raise HTTPException(400, str(e))

    return {
        "message": "Trigger registered",
        "rule": _rule_view(dispatcher, dispatcher.get_trigger(name))
    }


@router.get("")
async def list_triggers(dispatcher: AlertDispatcher = Depends(get_dispatcher)):
    rules = dispatcher.get_triggers()
    return {
        "count": len(rules),
        "rules": [_rule_view(dispatcher, r) for r in rules]
    }


@router.post("/reset")
async def reset_cooldowns(dispatcher: AlertDispatcher = Depends(get_dispatcher)):
    dispatcher.triggers.reset_cooldowns()
    return {"message": "Trigger cooldowns reset"}


@router.get("/{name}")
async def get_trigger(name: str, dispatcher: AlertDispatcher = Depends(get_dispatcher)):
    try:
        rule = dispatcher.get_trigger(name)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    return {"rule": _rule_view(dispatcher, rule)}


@router.delete("/{name}")
async def delete_trigger(name: str, dispatcher: AlertDispatcher = Depends(get_dispatcher)):
    try:
        dispatcher.remove_trigger(name)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    return {"message": f"Trigger {name} deleted"}


@router.post("/{name}/enable")
async def enable_trigger(name: str, dispatcher: AlertDispatcher = Depends(get_dispatcher)):
    try:
        dispatcher.enable(name)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    return {"message": f"Trigger {name} enabled"}


@router.post("/{name}/disable")
async def disable_trigger(name: str, dispatcher: AlertDispatcher = Depends(get_dispatcher)):
    try:
        dispatcher.disable(name)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    return {"message": f"Trigger {name} disabled"}
