"""
通知渠道 / 偏好 / 模板 CRUD 操作
"""
from typing import Optional, List, Dict, Any
from datetime import datetime

from sqlalchemy.orm import Session

from db.models import NotificationChannel, UserNotificationPreference, NotificationTemplate


class ChannelCRUD:
    """通知渠道 CRUD 操作"""

    @staticmethod
    def create(
        db: Session,
        user_id: str,
        name: str,
        type: str,
        config: Dict[str, Any],
        is_active: bool = True,
        is_verified: bool = False,
    ) -> NotificationChannel:
        """创建渠道"""
        channel = NotificationChannel(
            user_id=user_id,
            name=name,
            type=type,
            config=config,
            is_active=is_active,
            is_verified=is_verified,
            failure_count=0,
        )

        db.add(channel)
        db.commit()
        db.refresh(channel)

        return channel

    @staticmethod
    def get_by_id(
        db: Session, channel_id: str, user_id: Optional[str] = None,
    ) -> Optional[NotificationChannel]:
        """根据 ID 获取渠道，传入 user_id 时校验归属"""
        query = db.query(NotificationChannel).filter(NotificationChannel.id == channel_id)
        if user_id is not None:
            query = query.filter(NotificationChannel.user_id == user_id)
        return query.first()

    @staticmethod
    def get_by_user(db: Session, user_id: str) -> List[NotificationChannel]:
        """获取用户全部渠道（按创建时间）"""
        return db.query(NotificationChannel) \
            .filter(NotificationChannel.user_id == user_id) \
            .order_by(NotificationChannel.created_at) \
            .all()

    @staticmethod
    def get_deliverable(
        db: Session,
        user_id: str,
        failure_threshold: int,
        channel_ids: Optional[List[str]] = None,
        channel_types: Optional[List[str]] = None,
    ) -> List[NotificationChannel]:
        """
        获取可投递的渠道

        条件: 启用、已验证、failure_count 低于阈值
        """
        query = db.query(NotificationChannel).filter(
            NotificationChannel.user_id == user_id,
            NotificationChannel.is_active.is_(True),
            NotificationChannel.is_verified.is_(True),
            NotificationChannel.failure_count < failure_threshold,
        )
        if channel_ids is not None:
            if not channel_ids:
                return []
            query = query.filter(NotificationChannel.id.in_(channel_ids))
        if channel_types is not None:
            query = query.filter(NotificationChannel.type.in_(channel_types))

        return query.order_by(NotificationChannel.created_at).all()

    @staticmethod
    def update(db: Session, channel: NotificationChannel, fields: Dict[str, Any]) -> NotificationChannel:
        """更新渠道字段"""
        for key, value in fields.items():
            setattr(channel, key, value)
        channel.updated_at = datetime.utcnow()

        db.commit()
        db.refresh(channel)

        return channel

    @staticmethod
    def delete(db: Session, channel: NotificationChannel) -> None:
        """删除渠道（级联删除投递记录与偏好）"""
        db.delete(channel)
        db.commit()


class PreferenceCRUD:
    """用户通知偏好 CRUD 操作"""

    @staticmethod
    def upsert(
        db: Session,
        user_id: str,
        alert_type: str,
        severity: str,
        channel_id: str,
        is_enabled: bool = True,
    ) -> UserNotificationPreference:
        """创建或更新偏好"""
        pref = db.query(UserNotificationPreference).filter(
            UserNotificationPreference.user_id == user_id,
            UserNotificationPreference.alert_type == alert_type,
            UserNotificationPreference.severity == severity,
            UserNotificationPreference.channel_id == channel_id,
        ).first()

        if pref is None:
            pref = UserNotificationPreference(
                user_id=user_id,
                alert_type=alert_type,
                severity=severity,
                channel_id=channel_id,
                is_enabled=is_enabled,
            )
            db.add(pref)
        else:
            pref.is_enabled = is_enabled
            pref.updated_at = datetime.utcnow()

        db.commit()
        db.refresh(pref)

        return pref

    @staticmethod
    def get_by_user(db: Session, user_id: str) -> List[UserNotificationPreference]:
        """获取用户全部偏好"""
        return db.query(UserNotificationPreference) \
            .filter(UserNotificationPreference.user_id == user_id) \
            .order_by(UserNotificationPreference.created_at) \
            .all()

    @staticmethod
    def get_enabled(
        db: Session, user_id: str, alert_type: str, severity: str,
    ) -> List[UserNotificationPreference]:
        """获取 (告警类型, 级别) 的启用偏好"""
        return db.query(UserNotificationPreference).filter(
            UserNotificationPreference.user_id == user_id,
            UserNotificationPreference.alert_type == alert_type,
            UserNotificationPreference.severity == severity,
            UserNotificationPreference.is_enabled.is_(True),
        ).all()

    @staticmethod
    def get_by_id(
        db: Session, pref_id: str, user_id: Optional[str] = None,
    ) -> Optional[UserNotificationPreference]:
        query = db.query(UserNotificationPreference).filter(UserNotificationPreference.id == pref_id)
        if user_id is not None:
            query = query.filter(UserNotificationPreference.user_id == user_id)
        return query.first()

    @staticmethod
    def delete(db: Session, pref: UserNotificationPreference) -> None:
        db.delete(pref)
        db.commit()


class TemplateCRUD:
    """通知模板 CRUD 操作"""

    @staticmethod
    def find(
        db: Session, channel_type: str, alert_type: str, severity: str,
    ) -> Optional[NotificationTemplate]:
        """
        查找模板

        优先匹配标记为默认的模板
        """
        return db.query(NotificationTemplate).filter(
            NotificationTemplate.type == channel_type,
            NotificationTemplate.alert_type == alert_type,
            NotificationTemplate.severity == severity,
        ).order_by(
            NotificationTemplate.is_default.desc(),
            NotificationTemplate.created_at,
        ).first()

    @staticmethod
    def create(
        db: Session,
        name: str,
        channel_type: str,
        alert_type: str,
        severity: str,
        body: str,
        subject: Optional[str] = None,
        is_default: bool = False,
    ) -> NotificationTemplate:
        template = NotificationTemplate(
            name=name,
            type=channel_type,
            alert_type=alert_type,
            severity=severity,
            subject=subject,
            body=body,
            is_default=is_default,
        )

        db.add(template)
        db.commit()
        db.refresh(template)

        return template
