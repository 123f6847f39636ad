# sphere_app/utils/codec.py
"""
Realtime Database에 저장되는 JSON 값과 파이썬 객체 사이의 변환.
형식 지정이 필요하면 marshmallow 스키마를 넘깁니다.
"""

from dataclasses import asdict, is_dataclass
from enum import Enum
from typing import Any, Optional

from marshmallow import Schema, ValidationError

from sphere_app.core.exceptions import DecodeFailedError


def encode_value(value: Any, schema: Optional[Schema] = None) -> Any:
    """저장 가능한 JSON 호환 값으로 변환합니다."""
    if schema is not None:
        return schema.dump(value)
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    if isinstance(value, Enum):
        return value.value
    return value


def decode_value(raw: Any, schema: Optional[Schema] = None, many: bool = False, path: Optional[str] = None) -> Any:
    """
    저장된 값을 요청한 형식으로 변환합니다.

    :param raw: 데이터베이스에서 읽은 값. None이면 "값 없음"으로 그대로 반환합니다.
    :param schema: 변환에 사용할 marshmallow 스키마. 없으면 raw를 그대로 반환합니다.
    :param many: True면 raw를 {key: child} 형태로 보고 각 자식을 스키마로 변환합니다.
    :raises DecodeFailedError: 스키마 검증에 실패한 경우
    """
    if raw is None or schema is None:
        return raw
    try:
        if many:
            if not isinstance(raw, dict):
                raise DecodeFailedError("자식 목록 형태의 값이 아닙니다.", path=path)
            return {key: schema.load(child) for key, child in raw.items()}
        return schema.load(raw)
    except ValidationError as e:
        raise DecodeFailedError(f"값 변환 실패: {e.messages}", path=path) from e
