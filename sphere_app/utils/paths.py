# sphere_app/utils/paths.py
"""
Realtime Database 경로('/'로 구분된 문자열) 처리 유틸리티
"""

import logging
from typing import Iterable, List

logger = logging.getLogger(__name__)

SEPARATOR = '/'


def normalize_path(path: str) -> str:
    """
    앞뒤 '/'를 제거합니다. 루트('/', '')는 빈 문자열이 됩니다.

    >>> normalize_path('/users/17865/')
    'users/17865'
    """
    if path is None:
        raise ValueError("경로는 None일 수 없습니다.")
    return path.strip(SEPARATOR)


def is_root(path: str) -> bool:
    return normalize_path(path) == ''


def split_path(path: str) -> List[str]:
    return [segment for segment in path.split(SEPARATOR) if segment]


def is_same_or_descendant(path: str, ancestor: str) -> bool:
    """path가 ancestor와 같거나 ancestor + '/' 로 시작하면 True"""
    return path == ancestor or path.startswith(ancestor + SEPARATOR)


def compose_paths(paths: Iterable[str]) -> List[str]:
    """
    중복되거나 서로 겹치는 경로 목록을 덮어쓰기가 일어나지 않는 최소 경로 목록으로 줄입니다.
    상위 경로가 이미 있으면 하위 경로는 제거됩니다.
    비교 전에 앞뒤 '/'를 제거하므로 '/rooms/1'과 'rooms/1'은 같은 경로입니다.
    루트는 '/'로 남으며 다른 경로를 덮지 않습니다.

        compose_paths(["/", "first", "first/second", "second", "third/four", "third/four/five", "third/six/seven"])
        # ["/", "first", "second", "third/four", "third/six/seven"]

    문자열 그대로 정렬하면 '-'(0x2d)처럼 '/'보다 앞서는 문자가 있을 때
    상위 경로와 하위 경로 사이에 다른 형제 경로가 끼어들 수 있습니다.
    ('a', 'a-b', 'a/c' 순서) 그래서 경로를 세그먼트 단위로 나눈 리스트로 정렬합니다.
    이렇게 하면 하위 경로는 항상 상위 경로 바로 뒤에 모입니다.
    """
    original = list(paths)
    normalized = {SEPARATOR.join(split_path(normalize_path(path))) for path in original}
    composed: List[str] = []
    higher_path = None
    for path in sorted(normalized, key=split_path):
        if path == '':
            composed.append(SEPARATOR)
            continue
        if higher_path is not None and is_same_or_descendant(path, higher_path):
            continue
        composed.append(path)
        higher_path = path
    logger.debug(f"compose_paths: {original} -> {composed}")
    return composed
