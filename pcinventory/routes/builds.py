# pcinventory/routes/builds.py
from flask import Blueprint, request

from pcinventory.errors import PartNotFoundError, ValidationError
from pcinventory.routes.common import json_body, ok, require_identity, respond, services
from pcinventory.schemas.error_type import ErrorType
from pcinventory.schemas.operation_result import OperationResult
from pcinventory.schemas.outcomes import Selection

builds_bp = Blueprint('builds', __name__, url_prefix='/builds')

TRUE_VALUES = {'1', 'true', 'yes', 'on'}


def _partial(data, explanation) -> OperationResult:
    return OperationResult(
        ok=True,
        error_type=ErrorType.PARTIAL_FAILURE,
        data=data,
        explanation=explanation,
        side_effect=True,
    )


def _as_int(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


@builds_bp.route('', methods=['GET'])
async def list_builds():
    identity = require_identity()
    builds = await services().store.builds(identity).bulk_read()
    return ok({'builds': [b.model_dump(mode='json') for b in builds]})


@builds_bp.route('', methods=['POST'])
async def create_build():
    """
    保存新 Build：{name, notes, lines: [{part_id, quantity}]}
    每行先按库存暂存（不足时整体拒绝，不写入），再提交
    """
    identity = require_identity()
    body = json_body()
    raw_lines = body.get('lines') or []
    if not isinstance(raw_lines, list):
        raise ValidationError('lines must be a list.')

    container = services()
    with container.open_view(identity) as view:
        allocation = container.allocation(view)
        selection = Selection(name=body.get('name') or '', notes=body.get('notes') or '')

        problems = []
        for raw in raw_lines:
            if not isinstance(raw, dict):
                raise ValidationError('Each line must be an object with part_id and quantity.')
            part_id = raw.get('part_id')
            part = view.find_part(part_id) if part_id else None
            if part is None:
                raise PartNotFoundError(f"Part {part_id} not found.")
            existing = selection.line_for(part.id)
            already = existing.quantity if existing is not None else 0
            staged = allocation.add_selection(selection, part)
            if not staged.ok:
                problems.append(staged.error_message)
                continue
            adjusted = allocation.set_line_quantity(selection, part.id, already + _as_int(raw.get('quantity', 1)))
            if adjusted.explanation:
                problems.append(adjusted.explanation)

        if problems:
            raise ValidationError(' '.join(problems))

        result = await allocation.commit(identity, selection)

    if result.failures:
        return respond(_partial(
            result.model_dump(mode='json'),
            f"Build saved, but {len(result.failures)} inventory step(s) failed; check the parts list.",
        ), 201)
    return ok(result.model_dump(mode='json'), status=201, side_effect=True)


@builds_bp.route('/<build_id>', methods=['PUT'])
async def edit_build(build_id):
    """编辑 Build：替换行并重算总价（不重新分配库存）"""
    identity = require_identity()
    body = json_body()
    container = services()
    with container.open_view(identity) as view:
        build = await container.reconciliation(view).reconcile_edit(
            identity,
            build_id,
            body.get('lines') or [],
            name=body.get('name'),
            notes=body.get('notes'),
        )
    return ok({'build': build.model_dump(mode='json')}, side_effect=True)


@builds_bp.route('/<build_id>', methods=['DELETE'])
async def delete_build(build_id):
    """删除 Build：?return_to_inventory=true 归还库存，false 直接丢弃"""
    identity = require_identity()
    return_to_inventory = request.args.get('return_to_inventory', 'true').strip().lower() in TRUE_VALUES
    container = services()
    with container.open_view(identity) as view:
        report = await container.reconciliation(view).reconcile_delete(identity, build_id, return_to_inventory)
    if report.failures:
        return respond(_partial(
            report.model_dump(mode='json'),
            f"Build deleted, but {len(report.failures)} part(s) could not be reconciled.",
        ))
    return ok(report.model_dump(mode='json'), side_effect=True)
