# pcinventory/routes/auth.py
from flask import Blueprint, session

from pcinventory.db.enums import AuditEntityType
from pcinventory.errors import InventoryError, StoreError
from pcinventory.logger import get_logger
from pcinventory.routes.common import (
    BUFFER_SESSION_KEY,
    current_identity,
    json_body,
    ok,
    respond,
    services,
    session_buffer,
)
from pcinventory.schemas.error_type import ErrorType
from pcinventory.schemas.operation_result import OperationResult
from pcinventory.services.identity import Identity
from pcinventory.services.user_service import UserService

logger = get_logger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='')


@auth_bp.route('/register', methods=['POST'])
def register():
    """注册"""
    body = json_body()
    container = services()
    db = container.session_factory()
    try:
        user_service = UserService(db)
        user = user_service.create_user(
            email=body.get('email', ''),
            password=body.get('password', ''),
            display_name=body.get('display_name'),
        )
        db.commit()
        user_id, email = user.id, user.email
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    container.audit_log_service.record_create(
        owner_id=user_id,
        entity_type=AuditEntityType.User,
        entity_id=user_id,
        operator_id=user_id,
    )
    return ok({'user_id': user_id, 'email': email}, status=201, side_effect=True)


@auth_bp.route('/login', methods=['POST'])
async def login():
    """登录：写入 session，然后把本会话的本地缓冲合并进远端集合"""
    body = json_body()
    email = (body.get('email') or '').strip()
    password = body.get('password') or ''
    if not email or not password:
        return respond(OperationResult.failure(ErrorType.INPUT_ERROR, 'Enter email and password.'), 400)

    container = services()
    db = container.session_factory()
    try:
        user = UserService(db).authenticate(email=email, password=password)
        identity = Identity(uid=user.id, email=user.email)
        display_name = user.display_name
    except ValueError:
        return respond(OperationResult.failure(ErrorType.INPUT_ERROR, 'Invalid email or password.'), 401)
    except PermissionError:
        return respond(OperationResult.failure(ErrorType.PERMISSION_DENIED, 'This account is deactivated.'), 403)
    finally:
        db.close()

    # 登录成功，设置 session
    session['user_id'] = identity.uid
    session['user_email'] = identity.email
    session['user_name'] = display_name or identity.email

    data = {'user_id': identity.uid, 'email': identity.email, 'merged_part_ids': [], 'skipped_uuids': []}
    buffer = session_buffer()
    if buffer is None:
        return ok(data)
    try:
        report = await container.sync_service.merge_local_into_remote(identity, buffer)
        data['merged_part_ids'] = report.created_ids
        data['skipped_uuids'] = report.skipped_uuids
        session.pop(BUFFER_SESSION_KEY, None)
    except InventoryError as e:
        # 合并失败不影响登录，本地缓冲保留到下次登录
        logger.error("Local buffer merge failed for %s: %s", identity.uid, e)
        data['sync_error'] = str(e)

    return ok(data, side_effect=bool(data.get('merged_part_ids')))


@auth_bp.route('/logout', methods=['POST'])
def logout():
    """登出"""
    identity = current_identity()
    if identity is not None:
        try:
            services().audit_log_service.record_system_update(
                owner_id=identity.uid,
                entity_type=AuditEntityType.User,
                entity_id=identity.uid,
                changed_attribute='session',
                before_value='signed_in',
                after_value='signed_out',
            )
        except StoreError as e:
            logger.error("Audit of logout for %s failed: %s", identity.uid, e)

    # 未上传的本地缓冲跟随本会话保留
    buffer_key = session.get(BUFFER_SESSION_KEY)
    session.clear()
    if buffer_key:
        session[BUFFER_SESSION_KEY] = buffer_key
    return ok({'signed_out': identity is not None})


@auth_bp.route('/me')
def me():
    identity = current_identity()
    if identity is None:
        return ok({'user': None})
    return ok({'user': {'user_id': identity.uid, 'email': identity.email, 'name': session.get('user_name')}})
