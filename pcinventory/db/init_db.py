from pcinventory.db.session import get_engine
from pcinventory.db.base import Base
# 导入所有表，确保 metadata 完整
from pcinventory.models.user import User  # noqa: F401
from pcinventory.models.part import Part  # noqa: F401
from pcinventory.models.build import Build  # noqa: F401
from pcinventory.models.audit_log import AuditLog  # noqa: F401

def init_db(engine=None):
    engine = engine or get_engine()
    Base.metadata.create_all(bind=engine)
