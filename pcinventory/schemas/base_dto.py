from typing import Any, ClassVar, Dict, FrozenSet
from pydantic import BaseModel, ConfigDict

class BaseDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    # 允许调用方写入的字段（白名单），服务端字段不在其中
    WRITABLE_FIELDS: ClassVar[FrozenSet[str]] = frozenset()

    @classmethod#强制所有 DTO 显式定义映射
    def from_orm_model(cls, orm_obj):
        """
        子类应 override
        """
        raise NotImplementedError(
            f"{cls.__name__}.from_orm_model() must be implemented"
        )

    @classmethod
    def to_column_values(cls, fields: Dict[str, Any]) -> Dict[str, Any]:
        '''
        Convert caller-supplied document fields into ORM column values.
        Unknown fields raise ValueError so typos never silently vanish.
        '''
        unknown = set(fields) - cls.WRITABLE_FIELDS
        if unknown:
            raise ValueError(f"{cls.__name__}: fields not writable: {sorted(unknown)}")
        return dict(fields)
