"""
告警规则 API 路由
"""
from typing import Optional

from fastapi import APIRouter, Query, Path, Depends

from alerts import AlertRuleEngine
from api.dependencies import get_current_user_id, get_rule_engine
from api.schemas.response import APIResponse, PaginationInfo
from api.schemas.rule import (
    RuleCreate,
    RuleUpdate,
    RuleInfo,
    RuleListResponse,
    RuleTestResult,
    RuleStats,
)
from core.exceptions import ResourceNotFoundError
from db.models import AlertType

router = APIRouter()


@router.get("", response_model=APIResponse[RuleListResponse])
async def list_rules(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    provider_id: Optional[str] = Query(None),
    type: Optional[AlertType] = Query(None),
    is_active: Optional[bool] = Query(None),
    user_id: str = Depends(get_current_user_id),
    engine: AlertRuleEngine = Depends(get_rule_engine),
):
    """规则列表"""
    filters = {"provider_id": provider_id, "type": type.value if type else None, "is_active": is_active}
    rules, total = engine.list_rules(
        user_id, page=page, page_size=page_size,
        **{k: v for k, v in filters.items() if v is not None},
    )
    return APIResponse(
        data=RuleListResponse(
            items=[RuleInfo.model_validate(r) for r in rules],
            pagination=PaginationInfo.build(page, page_size, total),
        )
    )


@router.post("", response_model=APIResponse[RuleInfo], status_code=201)
async def create_rule(
    request: RuleCreate,
    user_id: str = Depends(get_current_user_id),
    engine: AlertRuleEngine = Depends(get_rule_engine),
):
    """
    创建规则

    条件不合法返回 400，提供方不存在返回 404
    """
    rule = engine.create_rule(
        user_id=user_id,
        name=request.name,
        type=request.type.value,
        severity=request.severity.value,
        conditions=request.conditions,
        provider_id=request.provider_id,
        description=request.description,
        is_active=request.is_active,
        cooldown_minutes=request.cooldown_minutes,
    )
    return APIResponse(code=201, message="规则已创建", data=RuleInfo.model_validate(rule))


@router.get("/stats", response_model=APIResponse[RuleStats])
async def get_rule_stats(
    user_id: str = Depends(get_current_user_id),
    engine: AlertRuleEngine = Depends(get_rule_engine),
):
    return APIResponse(data=RuleStats(**engine.get_rule_stats(user_id)))


@router.get("/{rule_id}", response_model=APIResponse[RuleInfo])
async def get_rule(
    rule_id: str = Path(..., description="规则 ID"),
    user_id: str = Depends(get_current_user_id),
    engine: AlertRuleEngine = Depends(get_rule_engine),
):
    rule = engine.get_rule(rule_id, user_id)
    if rule is None:
        raise ResourceNotFoundError("Rule", rule_id)
    return APIResponse(data=RuleInfo.model_validate(rule))


@router.patch("/{rule_id}", response_model=APIResponse[RuleInfo])
async def update_rule(
    request: RuleUpdate,
    rule_id: str = Path(..., description="规则 ID"),
    user_id: str = Depends(get_current_user_id),
    engine: AlertRuleEngine = Depends(get_rule_engine),
):
    """只更新请求中给出的字段"""
    rule = engine.update_rule(rule_id, user_id, request.model_dump(exclude_unset=True, mode="json"))
    if rule is None:
        raise ResourceNotFoundError("Rule", rule_id)
    return APIResponse(data=RuleInfo.model_validate(rule))


@router.delete("/{rule_id}", response_model=APIResponse[None])
async def delete_rule(
    rule_id: str = Path(..., description="规则 ID"),
    user_id: str = Depends(get_current_user_id),
    engine: AlertRuleEngine = Depends(get_rule_engine),
):
    if not engine.delete_rule(rule_id, user_id):
        raise ResourceNotFoundError("Rule", rule_id)
    return APIResponse(message="规则已删除")


@router.post("/{rule_id}/toggle", response_model=APIResponse[RuleInfo])
async def toggle_rule(
    rule_id: str = Path(..., description="规则 ID"),
    user_id: str = Depends(get_current_user_id),
    engine: AlertRuleEngine = Depends(get_rule_engine),
):
    rule = engine.toggle_rule(rule_id, user_id)
    if rule is None:
        raise ResourceNotFoundError("Rule", rule_id)
    return APIResponse(data=RuleInfo.model_validate(rule))


@router.post("/{rule_id}/test", response_model=APIResponse[RuleTestResult])
async def test_rule(
    rule_id: str = Path(..., description="规则 ID"),
    user_id: str = Depends(get_current_user_id),
    engine: AlertRuleEngine = Depends(get_rule_engine),
):
    """试运行：忽略冷却期，不创建告警"""
    rule = engine.get_rule(rule_id, user_id)
    if rule is None:
        raise ResourceNotFoundError("Rule", rule_id)
    return APIResponse(data=RuleTestResult(**engine.test_rule(rule).to_dict()))
