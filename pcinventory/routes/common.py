# pcinventory/routes/common.py
from typing import Any, Dict, Optional
from uuid import uuid4

from flask import current_app, jsonify, request, session

from pcinventory.errors import PermissionDeniedError
from pcinventory.schemas.operation_result import OperationResult
from pcinventory.services.identity import Identity
from pcinventory.services.service_container import ServiceContainer
from pcinventory.store.local_buffer import LocalBufferStore

BUFFER_SESSION_KEY = "local_buffer_key"


def services() -> ServiceContainer:
    return current_app.extensions["pcinventory"]


def current_identity() -> Optional[Identity]:
    """session 中的登录身份，未登录返回 None"""
    user_id = session.get("user_id")
    if not user_id:
        return None
    return Identity(uid=user_id, email=session.get("user_email"))


def session_buffer(create: bool = False) -> Optional[LocalBufferStore]:
    """本会话自己的本地缓冲；尚未创建且 create=False 时返回 None"""
    buffer_key = session.get(BUFFER_SESSION_KEY)
    if not buffer_key:
        if not create:
            return None
        buffer_key = uuid4().hex
        session[BUFFER_SESSION_KEY] = buffer_key
    return services().local_buffer_for(buffer_key)


def require_identity() -> Identity:
    """检查登录状态"""
    identity = current_identity()
    if identity is None:
        raise PermissionDeniedError("sign in first")
    return identity


def respond(result: OperationResult, status: int = 200):
    return jsonify(result.model_dump(mode="json")), status


def ok(data: Optional[Dict[str, Any]] = None, status: int = 200, **kwargs):
    return respond(OperationResult.success(data, **kwargs), status)


def json_body() -> Dict[str, Any]:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}
