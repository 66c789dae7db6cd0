"""
告警规则 CRUD 操作
"""
from typing import Optional, List, Dict, Any, Tuple
from datetime import datetime

from sqlalchemy import func, desc
from sqlalchemy.orm import Session

from db.models import AlertRule


class AlertRuleCRUD:
    """告警规则 CRUD 操作"""

    @staticmethod
    def create(
        db: Session,
        user_id: str,
        name: str,
        type: str,
        severity: str,
        conditions: Dict[str, Any],
        provider_id: Optional[str] = None,
        description: Optional[str] = None,
        is_active: bool = True,
        cooldown_minutes: int = 60,
    ) -> AlertRule:
        """创建规则"""
        rule = AlertRule(
            user_id=user_id,
            provider_id=provider_id,
            name=name,
            description=description,
            type=type,
            severity=severity,
            conditions=conditions,
            is_active=is_active,
            cooldown_minutes=cooldown_minutes,
        )

        db.add(rule)
        db.commit()
        db.refresh(rule)

        return rule

    @staticmethod
    def get_by_id(db: Session, rule_id: str, user_id: Optional[str] = None) -> Optional[AlertRule]:
        """根据 ID 获取规则，传入 user_id 时校验归属"""
        query = db.query(AlertRule).filter(AlertRule.id == rule_id)
        if user_id is not None:
            query = query.filter(AlertRule.user_id == user_id)
        return query.first()

    @staticmethod
    def get_list(
        db: Session,
        user_id: str,
        page: int = 1,
        page_size: int = 20,
        provider_id: Optional[str] = None,
        type: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> Tuple[List[AlertRule], int]:
        """
        获取规则列表

        Returns:
            (规则列表, 总数)
        """
        query = db.query(AlertRule).filter(AlertRule.user_id == user_id)

        if provider_id:
            query = query.filter(AlertRule.provider_id == provider_id)
        if type:
            query = query.filter(AlertRule.type == type)
        if is_active is not None:
            query = query.filter(AlertRule.is_active == is_active)

        total = query.count()

        rules = query.order_by(desc(AlertRule.created_at)) \
            .offset((page - 1) * page_size) \
            .limit(page_size) \
            .all()

        return rules, total

    @staticmethod
    def update(db: Session, rule: AlertRule, fields: Dict[str, Any]) -> AlertRule:
        """更新规则字段"""
        for key, value in fields.items():
            setattr(rule, key, value)
        rule.updated_at = datetime.utcnow()

        db.commit()
        db.refresh(rule)

        return rule

    @staticmethod
    def delete(db: Session, rule: AlertRule) -> None:
        """删除规则"""
        db.delete(rule)
        db.commit()

    @staticmethod
    def get_active_by_user(db: Session, user_id: str) -> List[AlertRule]:
        """获取用户全部启用的规则"""
        return db.query(AlertRule) \
            .filter(AlertRule.user_id == user_id, AlertRule.is_active.is_(True)) \
            .order_by(AlertRule.created_at) \
            .all()

    @staticmethod
    def get_users_with_active_rules(db: Session) -> List[str]:
        """获取拥有启用规则的用户"""
        rows = db.query(AlertRule.user_id) \
            .filter(AlertRule.is_active.is_(True)) \
            .distinct() \
            .all()
        return [row[0] for row in rows]

    @staticmethod
    def mark_triggered(db: Session, rule: AlertRule, when: datetime) -> AlertRule:
        """记录一次触发"""
        rule.last_triggered = when
        rule.trigger_count = (rule.trigger_count or 0) + 1
        rule.updated_at = when

        db.commit()
        db.refresh(rule)

        return rule

    @staticmethod
    def count_by_field(db: Session, user_id: str, field: str) -> Dict[str, int]:
        """按 type / severity 分组统计"""
        column = getattr(AlertRule, field)
        results = db.query(column, func.count(AlertRule.id)) \
            .filter(AlertRule.user_id == user_id) \
            .group_by(column) \
            .all()

        return {value: count for value, count in results}

    @staticmethod
    def count_triggered_since(db: Session, user_id: str, since: datetime) -> int:
        """统计某时间点之后触发过的规则数"""
        return db.query(func.count(AlertRule.id)) \
            .filter(AlertRule.user_id == user_id, AlertRule.last_triggered >= since) \
            .scalar() or 0

    @staticmethod
    def delete_inactive_before(db: Session, cutoff: datetime) -> int:
        """删除停用且在 cutoff 之前未更新的规则"""
        deleted = db.query(AlertRule) \
            .filter(AlertRule.is_active.is_(False), AlertRule.updated_at <= cutoff) \
            .delete(synchronize_session="fetch")
        db.commit()
        return deleted
