# pcinventory/errors.py
from typing import Tuple

from pcinventory.schemas.error_type import ErrorType


class InventoryError(Exception):
    """Base class for every error raised by the inventory engine."""


class ValidationError(InventoryError):
    """Input rejected before any write happened."""


class BuildNotFoundError(ValidationError):
    pass


class PartNotFoundError(ValidationError):
    pass


class StoreError(InventoryError):
    """A store call failed (database, network, auth)."""


class PermissionDeniedError(StoreError):
    pass


class DocumentNotFoundError(StoreError):
    pass


class WriteTimeoutError(InventoryError):
    """
    The write did not answer before the deadline.
    The request is NOT cancelled: the document may still be created afterwards.
    """


def classify_error(e: Exception) -> Tuple[ErrorType, str, int]:
    '''
    把异常映射为 (ErrorType, message, http status)

    :param e: exception raised by a service
    :return: error type, message for the user, HTTP status code
    '''
    msg = str(e) or e.__class__.__name__

    if isinstance(e, (BuildNotFoundError, PartNotFoundError, DocumentNotFoundError)):
        return ErrorType.NOT_FOUND, msg, 404
    if isinstance(e, ValidationError):
        return ErrorType.VALIDATION_ERROR, msg, 400
    if isinstance(e, PermissionDeniedError):
        # 权限问题单独给出诊断信息
        return ErrorType.PERMISSION_DENIED, f"Permission denied: {msg}. Sign in again or check collection access.", 403
    if isinstance(e, WriteTimeoutError):
        return ErrorType.TIMEOUT_ERROR, msg, 504
    if isinstance(e, StoreError):
        return ErrorType.STORE_ERROR, msg, 502
    return ErrorType.SYSTEM_ERROR, msg, 500
