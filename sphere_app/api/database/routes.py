# sphere_app/api/database/routes.py
"""
Realtime Database 서비스를 그대로 노출하는 엔드포인트.
서비스 예외(DatabaseServiceError)는 app/__init__.py의 전역 핸들러가 JSON 응답으로 변환합니다.
"""

import logging
from flask import Blueprint, request, jsonify, current_app, Response
from marshmallow import ValidationError

from sphere_app.api.database.schemas import BatchWriteSchema, QueryArgsSchema, ValueSchema
from sphere_app.models.observer import ObservationMode, ObserverDescriptor
from sphere_app.utils.paths import normalize_path

database_bp = Blueprint('database_bp', __name__)


def _display_path(path: str) -> str:
    return '/' + normalize_path(path)


@database_bp.route('/_batch', methods=['POST'])
def batch_write():
    service = current_app.services['database']
    try:
        data = BatchWriteSchema().load(request.get_json() or {})
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400

    writers = {
        'create': service.create_many,
        'update': service.update_many,
        'write': service.write_many,
    }
    try:
        writers[data['mode']](data['paths'], data['value'])
    except ValueError as e:
        return jsonify({"error_code": "INVALID_PAYLOAD", "message": str(e)}), 400
    return jsonify({"mode": data['mode'], "paths": data['paths']}), 200


@database_bp.route('/', defaults={'path': '/'}, methods=['GET'])
@database_bp.route('/<path:path>', methods=['GET'])
def get_value(path: str):
    """경로의 값을 조회합니다. 정렬/필터 파라미터가 있으면 1회성 쿼리로 조회합니다."""
    service = current_app.services['database']
    try:
        query = QueryArgsSchema().load(request.args)
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400

    if query is None:
        value = service.get_data(path)
    else:
        descriptor = ObserverDescriptor(path=path, mode=ObservationMode.ONCE, **query)
        received = {}
        service.add_observer(descriptor, lambda value, error: received.update(value=value, error=error))
        if received.get('error') is not None:
            raise received['error']
        value = received.get('value')

    return jsonify({"path": _display_path(path), "value": value}), 200


@database_bp.route('/<path:path>', methods=['POST'])
def create_value(path: str):
    service = current_app.services['database']
    try:
        data = ValueSchema().load(request.get_json() or {})
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400

    service.create(path, data['value'])
    logging.info(f"값 생성 완료 (path: {_display_path(path)})")
    return jsonify({"path": _display_path(path), "value": data['value']}), 201


@database_bp.route('/<path:path>', methods=['PUT'])
def write_value(path: str):
    service = current_app.services['database']
    try:
        data = ValueSchema().load(request.get_json() or {})
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400

    service.write(path, data['value'])
    return jsonify({"path": _display_path(path), "value": data['value']}), 200


@database_bp.route('/<path:path>', methods=['PATCH'])
def update_value(path: str):
    service = current_app.services['database']
    try:
        data = ValueSchema().load(request.get_json() or {})
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400

    service.update(path, data['value'])
    return jsonify({"path": _display_path(path), "value": data['value']}), 200


@database_bp.route('/<path:path>', methods=['DELETE'])
def remove_value(path: str):
    service = current_app.services['database']
    service.remove(path)
    return Response(status=204)
