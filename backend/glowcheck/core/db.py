"""
数据库连接模块

管理数据库引擎和会话工厂。
使用 SQLModel 的 create_engine 创建数据库连接池。

重要提示：
- 数据库表结构通过 Alembic 迁移管理，不要在这里创建表
- 确保在使用前导入所有模型（glowcheck.models），否则元数据可能不完整
"""
from collections.abc import Callable

from sqlmodel import Session, create_engine  # SQLModel 的数据库工具

from glowcheck.core.config import settings

# 创建数据库引擎（连接池）
engine = create_engine(str(settings.SQLALCHEMY_DATABASE_URI))

# 会话工厂类型：每次调用返回一个新的数据库会话
SessionFactory = Callable[[], Session]


def new_session() -> Session:
    """
    创建一个绑定全局引擎的新会话

    后台对账任务在请求结束之后运行，不能复用请求内的会话，
    因此通过会话工厂自行打开和关闭。
    """
    return Session(engine)
