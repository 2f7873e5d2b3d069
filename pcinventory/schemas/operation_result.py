# pcinventory/schemas/operation_result.py
from typing import Any, Dict, Optional
from pydantic import BaseModel
from pcinventory.schemas.error_type import ErrorType

class OperationResult(BaseModel):
    '''
    UI-facing outcome of an engine operation.

    ok: bool - did the operation do what was asked
    error_type: Optional[ErrorType] - structured error category
    error_message: Optional[str] - human readable message
    data: Optional[Dict[str, Any]] - structured payload
    explanation: Optional[str] - note shown to the user even on success
    side_effect: bool - whether anything was written to a store
    '''
    ok: bool

    error_type: Optional[ErrorType] = None
    error_message: Optional[str] = None

    data: Optional[Dict[str, Any]] = None
    explanation: Optional[str] = None

    side_effect: bool = False

    @classmethod
    def success(
        cls,
        data: Optional[Dict[str, Any]] = None,
        *,
        explanation: Optional[str] = None,
        side_effect: bool = False,
    ) -> "OperationResult":
        return cls(ok=True, data=data, explanation=explanation, side_effect=side_effect)

    @classmethod
    def failure(
        cls,
        error_type: ErrorType,
        error_message: str,
        data: Optional[Dict[str, Any]] = None,
        *,
        side_effect: bool = False,
    ) -> "OperationResult":
        return cls(
            ok=False,
            error_type=error_type,
            error_message=error_message,
            data=data,
            side_effect=side_effect,
        )
