# pcinventory/routes/parts.py
from datetime import datetime

from flask import Blueprint, request, send_file

from pcinventory.routes.common import current_identity, json_body, ok, require_identity, services, session_buffer
from pcinventory.schemas.part_dto import PartDTO
from pcinventory.services.part_service import status_label

parts_bp = Blueprint('parts', __name__, url_prefix='/parts')


def _part_json(part: PartDTO) -> dict:
    data = part.model_dump(mode='json')
    data['status_label'] = status_label(part.status)
    return data


@parts_bp.route('', methods=['GET'])
async def list_parts():
    """零件列表：?type=CPU&sort=price"""
    identity = require_identity()
    part_service = services().part_service
    parts = await part_service.list_parts(
        identity,
        type_filter=request.args.get('type', 'all'),
        sort_by=request.args.get('sort', 'createdAt'),
    )
    groups = part_service.group_by_type(parts)
    return ok({
        'parts': [_part_json(p) for p in parts],
        'groups': {category: [p.id for p in items] for category, items in groups.items()},
        'inventory_value': str(part_service.inventory_value(parts)),
    })


@parts_bp.route('', methods=['POST'])
async def add_part():
    """新增零件；未登录时写入本地缓冲"""
    outcome = await services().part_service.add_part(
        current_identity(), json_body(), local_buffer=session_buffer(create=True),
    )
    explanation = None
    if outcome.buffered:
        explanation = 'Saved on this device; it will be uploaded when you sign in.'
    return ok(outcome.model_dump(mode='json'), status=201, explanation=explanation, side_effect=True)


@parts_bp.route('/<part_id>', methods=['PATCH'])
async def update_part(part_id):
    identity = require_identity()
    part = await services().part_service.update_part(identity, part_id, json_body())
    return ok({'part': _part_json(part)}, side_effect=True)


@parts_bp.route('/local', methods=['GET'])
def list_local():
    """本会话本地缓冲中尚未上传的零件"""
    buffer = session_buffer()
    if buffer is None:
        return ok({'parts': []})
    return ok({'parts': services().part_service.list_local(buffer)})


@parts_bp.route('/export', methods=['GET'])
async def export_parts():
    """下载 Excel 格式库存"""
    identity = require_identity()
    output = await services().part_service.export_parts(identity)
    filename = f"inventory_{datetime.now().strftime('%Y%m%d')}.xlsx"
    return send_file(
        output,
        mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
        as_attachment=True,
        download_name=filename,
    )
