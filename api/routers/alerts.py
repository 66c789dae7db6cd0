"""
告警 API 路由
"""
from typing import Optional

from fastapi import APIRouter, Query, Path, Depends

from alerts import AlertManager, AlertNotifier, HeuristicChecker
from api.dependencies import (
    get_current_user_id,
    get_alert_manager,
    get_heuristic_checker,
    get_notifier,
)
from api.schemas.alert import (
    AlertInfo,
    AlertListResponse,
    AlertStats,
    AlertIdsRequest,
    AlertQuery,
    MarkAllReadRequest,
    BulkUpdateResponse,
    GenerateAlertsResponse,
)
from api.schemas.response import APIResponse, PaginationInfo
from core.exceptions import ResourceNotFoundError

router = APIRouter()


@router.get("", response_model=APIResponse[AlertListResponse])
async def list_alerts(
    page: int = Query(1, ge=1, description="页码"),
    page_size: int = Query(20, ge=1, le=100, description="每页数量"),
    query: AlertQuery = Depends(),
    user_id: str = Depends(get_current_user_id),
    manager: AlertManager = Depends(get_alert_manager),
):
    """告警列表，最新在前"""
    alerts, total = manager.list_alerts(user_id, page=page, page_size=page_size, **query.filters())
    return APIResponse(
        data=AlertListResponse(
            items=[AlertInfo.model_validate(a) for a in alerts],
            pagination=PaginationInfo.build(page, page_size, total),
        )
    )


@router.get("/stats", response_model=APIResponse[AlertStats])
async def get_alert_stats(
    user_id: str = Depends(get_current_user_id),
    manager: AlertManager = Depends(get_alert_manager),
):
    """告警统计"""
    return APIResponse(data=AlertStats(**manager.get_stats(user_id)))


@router.post("/generate", response_model=APIResponse[GenerateAlertsResponse])
async def generate_alerts(
    user_id: str = Depends(get_current_user_id),
    checker: HeuristicChecker = Depends(get_heuristic_checker),
    notifier: AlertNotifier = Depends(get_notifier),
):
    """
    立即为当前用户执行启发式检测

    新建的告警会立即发送通知
    """
    created = checker.generate_heuristic_alerts(user_id)
    for alert in created:
        await notifier.notify(alert)
    return APIResponse(
        data=GenerateAlertsResponse(
            created=len(created),
            alerts=[AlertInfo.model_validate(a) for a in created],
        )
    )


@router.post("/read-all", response_model=APIResponse[BulkUpdateResponse])
async def mark_all_read(
    request: Optional[MarkAllReadRequest] = None,
    user_id: str = Depends(get_current_user_id),
    manager: AlertManager = Depends(get_alert_manager),
):
    """全部标记为已读，可限定提供方"""
    provider_id = request.provider_id if request else None
    updated = manager.mark_all_as_read(user_id, provider_id=provider_id)
    return APIResponse(data=BulkUpdateResponse(updated=updated))


@router.post("/read", response_model=APIResponse[BulkUpdateResponse])
async def mark_multiple_read(
    request: AlertIdsRequest,
    user_id: str = Depends(get_current_user_id),
    manager: AlertManager = Depends(get_alert_manager),
):
    updated = manager.mark_multiple_as_read(request.alert_ids, user_id)
    return APIResponse(data=BulkUpdateResponse(updated=updated))


@router.post("/bulk-resolve", response_model=APIResponse[BulkUpdateResponse])
async def bulk_resolve(
    request: AlertIdsRequest,
    user_id: str = Depends(get_current_user_id),
    manager: AlertManager = Depends(get_alert_manager),
):
    """批量解决（已解决的告警不计入）"""
    updated = manager.bulk_resolve(request.alert_ids, user_id)
    return APIResponse(data=BulkUpdateResponse(updated=updated))


@router.get("/{alert_id}", response_model=APIResponse[AlertInfo])
async def get_alert(
    alert_id: str = Path(..., description="告警 ID"),
    user_id: str = Depends(get_current_user_id),
    manager: AlertManager = Depends(get_alert_manager),
):
    alert = manager.get_alert(alert_id, user_id)
    if alert is None:
        raise ResourceNotFoundError("Alert", alert_id)
    return APIResponse(data=AlertInfo.model_validate(alert))


@router.post("/{alert_id}/read", response_model=APIResponse[AlertInfo])
async def mark_read(
    alert_id: str = Path(..., description="告警 ID"),
    user_id: str = Depends(get_current_user_id),
    manager: AlertManager = Depends(get_alert_manager),
):
    if not manager.mark_as_read(alert_id, user_id):
        raise ResourceNotFoundError("Alert", alert_id)
    return APIResponse(data=AlertInfo.model_validate(manager.get_alert(alert_id, user_id)))


@router.post("/{alert_id}/resolve", response_model=APIResponse[AlertInfo])
async def resolve_alert(
    alert_id: str = Path(..., description="告警 ID"),
    user_id: str = Depends(get_current_user_id),
    manager: AlertManager = Depends(get_alert_manager),
):
    """解决告警；已解决的告警原样返回"""
    alert = manager.get_alert(alert_id, user_id)
    if alert is None:
        raise ResourceNotFoundError("Alert", alert_id)
    if manager.resolve(alert_id, user_id):
        manager.db.refresh(alert)
    return APIResponse(data=AlertInfo.model_validate(alert))


@router.delete("/{alert_id}", response_model=APIResponse[None])
async def delete_alert(
    alert_id: str = Path(..., description="告警 ID"),
    user_id: str = Depends(get_current_user_id),
    manager: AlertManager = Depends(get_alert_manager),
):
    if not manager.delete_alert(alert_id, user_id):
        raise ResourceNotFoundError("Alert", alert_id)
    return APIResponse(message="告警已删除")
