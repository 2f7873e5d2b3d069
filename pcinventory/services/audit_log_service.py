from typing import Any, Optional, Union
from uuid import uuid4
from datetime import datetime, date
from decimal import Decimal
import enum

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from pcinventory.errors import StoreError
from pcinventory.models.audit_log import AuditLog
from pcinventory.db.enums import AuditEntityType, AuditAction


class AuditLogService:
    """
    Centralized service for recording every inventory mutation.
    This service is the ONLY place where AuditLog records are created.
    Each record is committed on its own, so steps that ran before a
    partial failure stay traceable.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def serialize_audit_value(self, value) -> Any:
        if value is None:
            return None
        if isinstance(value, Decimal):
            return str(value)
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        if isinstance(value, enum.Enum):
            return value.value
        if isinstance(value, (int, float, str, bool)):
            return value
        return str(value)  # 兜底

    def _normalize_entity_type(self, entity_type: Union[str, AuditEntityType]) -> AuditEntityType:
        """
        将字符串或枚举值转换为 AuditEntityType 枚举
        支持枚举值（"part"）和枚举名称（"Part"），大小写不敏感
        """
        if isinstance(entity_type, AuditEntityType):
            return entity_type
        entity_type_str = str(entity_type).strip().lower()
        for enum_member in AuditEntityType:
            if enum_member.value == entity_type_str or enum_member.name.lower() == entity_type_str:
                return enum_member
        raise ValueError(f"Unknown entity_type: {entity_type}. Valid values: {[e.value for e in AuditEntityType]}")

    def _write(
        self,
        *,
        owner_id: Optional[str],
        entity_type: Union[str, AuditEntityType],
        entity_id: str,
        action: AuditAction,
        changed_attribute: str,
        before_value: Any,
        after_value: Any,
        operator_id: str,
    ) -> None:
        log = AuditLog(
            id=str(uuid4()),
            owner_id=owner_id,
            entity_type=self._normalize_entity_type(entity_type),
            entity_id=entity_id,
            action=action,
            changed_attribute=changed_attribute,
            before_value=self.serialize_audit_value(before_value),
            after_value=self.serialize_audit_value(after_value),
            operator_id=operator_id,
            timestamp=datetime.now(),
        )
        with self.session_factory() as db:
            try:
                db.add(log)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise StoreError(f"audit log write failed: {e}") from e

    def record_create(
        self,
        *,
        owner_id: Optional[str],
        entity_type: Union[str, AuditEntityType],
        entity_id: str,
        operator_id: str,
        after_value: Any = None,
    ) -> None:
        '''
        创建一条创建操作的审计日志

        :param owner_id: identity whose collection received the document
        :param entity_type: part / build / user
        :param entity_id: id of the created document
        :param operator_id: identity that performed the action
        :param after_value: optional summary of the created document (e.g. quantity)
        '''
        self._write(
            owner_id=owner_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=AuditAction.create,
            changed_attribute="__all__",
            before_value=None,
            after_value=after_value,
            operator_id=operator_id,
        )

    def record_update(
        self,
        *,
        owner_id: Optional[str],
        entity_type: Union[str, AuditEntityType],
        entity_id: str,
        changed_attribute: str,
        before_value: Any,
        after_value: Any,
        operator_id: str,
    ) -> None:
        '''
        创建一条更新操作的审计日志

        :param changed_attribute: 变更的属性名称
        :param before_value: 修改前的值
        :param after_value: 修改后的值
        '''
        self._write(
            owner_id=owner_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=AuditAction.update,
            changed_attribute=changed_attribute,
            before_value=before_value,
            after_value=after_value,
            operator_id=operator_id,
        )

    def record_delete(
        self,
        *,
        owner_id: Optional[str],
        entity_type: Union[str, AuditEntityType],
        entity_id: str,
        operator_id: str,
        before_value: Any = None,
    ) -> None:
        self._write(
            owner_id=owner_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=AuditAction.delete,
            changed_attribute="__all__",
            before_value=before_value,
            after_value=None,
            operator_id=operator_id,
        )

    def record_system_update(
        self,
        *,
        owner_id: Optional[str],
        entity_type: Union[str, AuditEntityType],
        entity_id: str,
        changed_attribute: str,
        before_value: Any,
        after_value: Any,
    ) -> None:
        '''
        创建一条系统自动操作的审计日志，应用场景：
        SyncService 把本地缓冲合并进远端集合
        '''
        self._write(
            owner_id=owner_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=AuditAction.system,
            changed_attribute=changed_attribute,
            before_value=before_value,
            after_value=after_value,
            operator_id="SYSTEM",
        )

    def list_for_entity(self, entity_id: str) -> list:
        with self.session_factory() as db:
            return (
                db.query(AuditLog)
                .filter(AuditLog.entity_id == entity_id)
                .order_by(AuditLog.timestamp)
                .all()
            )
