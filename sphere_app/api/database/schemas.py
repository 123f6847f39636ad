# sphere_app/api/database/schemas.py
import json

from marshmallow import Schema, ValidationError, fields, post_load, validate, validates_schema

from sphere_app.models.observer import FilterKind, OrderKind, QueryFilter, QueryOrder


class ValueSchema(Schema):
    """POST / PUT / PATCH /api/db/<path> 요청 본문"""
    value = fields.Raw(required=True, allow_none=False)


class BatchWriteSchema(Schema):
    """
    POST /api/db/_batch
    여러 경로에 같은 값을 씁니다. mode에 따라 create / update / write 규칙을 따릅니다.
    """
    mode = fields.Str(required=True, validate=validate.OneOf(['create', 'update', 'write']))
    paths = fields.List(fields.Str(validate=validate.Length(min=1)), required=True, validate=validate.Length(min=1))
    value = fields.Raw(required=True, allow_none=False)


def _parse_scalar(raw: str):
    """쿼리 문자열 값을 JSON으로 해석하고, 실패하면 문자열 그대로 사용합니다."""
    try:
        return json.loads(raw)
    except ValueError:
        return raw


class QueryArgsSchema(Schema):
    """
    GET /api/db/<path> 의 쿼리 파라미터. 값이 하나도 없으면 일반 조회입니다.

    예) ?order=child&child=age&filter=end_at&value=52
        ?order=key&filter=limit_to_first&value=2
    """
    order = fields.Str(validate=validate.OneOf([k.value for k in OrderKind if k is not OrderKind.NONE]))
    child = fields.Str()
    filter = fields.Str(validate=validate.OneOf([k.value for k in FilterKind]))
    value = fields.Str()
    child_key = fields.Str()

    @validates_schema
    def validate_combination(self, data, **kwargs):
        if data.get('order') == OrderKind.CHILD.value and not data.get('child'):
            raise ValidationError("order=child에는 child 파라미터가 필요합니다.", field_name='child')
        if 'filter' in data and 'value' not in data:
            raise ValidationError("filter에는 value 파라미터가 필요합니다.", field_name='value')

    @post_load
    def make_query(self, data, **kwargs):
        if not data:
            return None
        try:
            order = QueryOrder(OrderKind(data['order']), data.get('child')) if 'order' in data else QueryOrder()
            query_filter = None
            if 'filter' in data:
                query_filter = QueryFilter(FilterKind(data['filter']), _parse_scalar(data['value']), data.get('child_key'))
        except ValueError as e:
            raise ValidationError(str(e))
        return {"order": order, "query_filter": query_filter}
