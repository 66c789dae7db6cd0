"""
通知渠道与偏好 API 路由
"""
from typing import List

from fastapi import APIRouter, Query, Path, Depends

from alerts import AlertNotifier
from api.dependencies import (
    get_current_user_id,
    get_channel_service,
    get_notification_router,
    get_notifier,
)
from api.schemas.channel import (
    ChannelCreate,
    ChannelUpdate,
    ChannelInfo,
    ChannelListResponse,
    ChannelTestResult,
    DeliveryInfo,
    DeliveryQuery,
    RetryResponse,
    PreferenceCreate,
    PreferenceInfo,
)
from api.schemas.response import APIResponse
from core.exceptions import ResourceNotFoundError
from core.notifications import ChannelService, NotificationRouter

router = APIRouter()


# ===== 渠道 =====

@router.get("/channels", response_model=APIResponse[ChannelListResponse])
async def list_channels(
    user_id: str = Depends(get_current_user_id),
    service: ChannelService = Depends(get_channel_service),
):
    channels = service.list_channels(user_id)
    return APIResponse(
        data=ChannelListResponse(
            items=[ChannelInfo.from_channel(c) for c in channels],
            total=len(channels),
        )
    )


@router.post("/channels", response_model=APIResponse[ChannelInfo], status_code=201)
async def create_channel(
    request: ChannelCreate,
    user_id: str = Depends(get_current_user_id),
    service: ChannelService = Depends(get_channel_service),
):
    """
    创建渠道

    除 in_app 外，新渠道需验证后才参与投递
    """
    channel = service.create_channel(user_id, request.name, request.type.value, request.config)
    return APIResponse(code=201, message="渠道已创建", data=ChannelInfo.from_channel(channel))


@router.get("/channels/{channel_id}", response_model=APIResponse[ChannelInfo])
async def get_channel(
    channel_id: str = Path(..., description="渠道 ID"),
    user_id: str = Depends(get_current_user_id),
    service: ChannelService = Depends(get_channel_service),
):
    return APIResponse(data=ChannelInfo.from_channel(service.get_channel(channel_id, user_id)))


@router.patch("/channels/{channel_id}", response_model=APIResponse[ChannelInfo])
async def update_channel(
    request: ChannelUpdate,
    channel_id: str = Path(..., description="渠道 ID"),
    user_id: str = Depends(get_current_user_id),
    service: ChannelService = Depends(get_channel_service),
):
    channel = service.update_channel(channel_id, user_id, request.model_dump(exclude_unset=True))
    return APIResponse(data=ChannelInfo.from_channel(channel))


@router.delete("/channels/{channel_id}", response_model=APIResponse[None])
async def delete_channel(
    channel_id: str = Path(..., description="渠道 ID"),
    user_id: str = Depends(get_current_user_id),
    service: ChannelService = Depends(get_channel_service),
):
    service.delete_channel(channel_id, user_id)
    return APIResponse(message="渠道已删除")


@router.post("/channels/{channel_id}/test", response_model=APIResponse[ChannelTestResult])
async def test_channel(
    channel_id: str = Path(..., description="渠道 ID"),
    user_id: str = Depends(get_current_user_id),
    service: ChannelService = Depends(get_channel_service),
):
    """发送测试通知，不影响渠道健康度"""
    result = await service.test_channel(channel_id, user_id)
    return APIResponse(data=ChannelTestResult(**result.to_dict()))


@router.post("/channels/{channel_id}/verify", response_model=APIResponse[ChannelInfo])
async def verify_channel(
    channel_id: str = Path(..., description="渠道 ID"),
    user_id: str = Depends(get_current_user_id),
    service: ChannelService = Depends(get_channel_service),
):
    return APIResponse(data=ChannelInfo.from_channel(service.verify_channel(channel_id, user_id)))


@router.post("/channels/{channel_id}/reset", response_model=APIResponse[ChannelInfo])
async def reset_channel_health(
    channel_id: str = Path(..., description="渠道 ID"),
    user_id: str = Depends(get_current_user_id),
    service: ChannelService = Depends(get_channel_service),
):
    """清零失败计数"""
    return APIResponse(data=ChannelInfo.from_channel(service.reset_health(channel_id, user_id)))


# ===== 投递 =====

@router.get("/deliveries", response_model=APIResponse[List[DeliveryInfo]])
async def delivery_history(
    query: DeliveryQuery = Depends(),
    user_id: str = Depends(get_current_user_id),
    service: ChannelService = Depends(get_channel_service),
):
    """投递历史，最新在前"""
    deliveries = service.delivery_history(
        user_id,
        channel_id=query.channel_id,
        status=query.status.value if query.status else None,
        start_date=query.start_date,
        end_date=query.end_date,
        limit=query.limit,
    )
    return APIResponse(data=[DeliveryInfo.model_validate(d) for d in deliveries])


@router.post("/channels/{channel_id}/retry", response_model=APIResponse[RetryResponse])
async def retry_failed_deliveries(
    channel_id: str = Path(..., description="渠道 ID"),
    limit: int = Query(50, ge=1, le=500),
    user_id: str = Depends(get_current_user_id),
    service: ChannelService = Depends(get_channel_service),
    notifier: AlertNotifier = Depends(get_notifier),
):
    """把该渠道仍有剩余次数的失败投递重新排队"""
    service.get_channel(channel_id, user_id)
    requeued = notifier.retry_failed_deliveries(channel_id=channel_id, limit=limit)
    return APIResponse(data=RetryResponse(requeued=requeued))


# ===== 偏好 =====

@router.get("/preferences", response_model=APIResponse[List[PreferenceInfo]])
async def list_preferences(
    user_id: str = Depends(get_current_user_id),
    notification_router: NotificationRouter = Depends(get_notification_router),
):
    prefs = notification_router.list_preferences(user_id)
    return APIResponse(data=[PreferenceInfo.model_validate(p) for p in prefs])


@router.put("/preferences", response_model=APIResponse[PreferenceInfo])
async def set_preference(
    request: PreferenceCreate,
    user_id: str = Depends(get_current_user_id),
    notification_router: NotificationRouter = Depends(get_notification_router),
):
    """设置 (告警类型, 级别, 渠道) 偏好，已存在则更新启用状态"""
    pref = notification_router.set_preference(
        user_id,
        alert_type=request.alert_type.value,
        severity=request.severity.value,
        channel_id=request.channel_id,
        is_enabled=request.is_enabled,
    )
    return APIResponse(data=PreferenceInfo.model_validate(pref))


@router.delete("/preferences/{pref_id}", response_model=APIResponse[None])
async def delete_preference(
    pref_id: str = Path(..., description="偏好 ID"),
    user_id: str = Depends(get_current_user_id),
    notification_router: NotificationRouter = Depends(get_notification_router),
):
    if not notification_router.delete_preference(pref_id, user_id):
        raise ResourceNotFoundError("Preference", pref_id)
    return APIResponse(message="偏好已删除")
