"""
数据库自动初始化检查模块
在应用启动时自动检查并创建缺失的表
"""
from sqlalchemy import inspect
from pcinventory.db.session import get_engine
from pcinventory.db.init_db import init_db

REQUIRED_TABLES = {"users", "parts", "builds", "audit_logs"}


def check_tables_exist(engine=None) -> bool:
    """检查数据库表是否存在"""
    engine = engine or get_engine()
    inspector = inspect(engine)
    tables = set(inspector.get_table_names())
    return REQUIRED_TABLES.issubset(tables)


def auto_init(engine=None):
    """
    自动初始化检查
    如果数据库未初始化，自动建表
    """
    engine = engine or get_engine()
    print("🔍 Checking database tables...")

    if not check_tables_exist(engine):
        print("📦 Tables missing, creating...")
        init_db(engine)
        print("✅ Tables created")
    else:
        print("✅ Tables already exist")


if __name__ == "__main__":
    auto_init()
