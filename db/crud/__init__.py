"""
数据库 CRUD 操作模块
"""
from .rule import AlertRuleCRUD
from .alert import AlertCRUD
from .channel import ChannelCRUD, PreferenceCRUD, TemplateCRUD
from .delivery import DeliveryCRUD

__all__ = [
    "AlertRuleCRUD",
    "AlertCRUD",
    "ChannelCRUD",
    "PreferenceCRUD",
    "TemplateCRUD",
    "DeliveryCRUD",
]
