"""
객체 참조(ObjectRef) 타입

24자리 16진수 문자열 식별자. 앞 4바이트는 생성 시각(초), 나머지 8바이트는 난수.
str 의 하위 클래스이므로 참조 컬럼(String(24))에 그대로 바인딩됩니다.
대소문자를 구분하지 않으며 항상 소문자로 저장됩니다.
"""
import re
import secrets
import time
from typing import Any

_OBJECT_REF_PATTERN = re.compile(r"[0-9a-fA-F]{24}")


class ObjectRef(str):
    """데이터베이스 객체 참조"""

    __slots__ = ()

    def __new__(cls, value: str):
        if not cls.is_valid(value):
            raise ValueError(f"'{value}' is not a valid object reference")
        return super().__new__(cls, value.lower())

    @staticmethod
    def is_valid(value: Any) -> bool:
        return isinstance(value, str) and _OBJECT_REF_PATTERN.fullmatch(value) is not None

    @classmethod
    def generate(cls) -> "ObjectRef":
        return cls(f"{int(time.time()) & 0xFFFFFFFF:08x}{secrets.token_hex(8)}")

    def __repr__(self) -> str:
        return f"ObjectRef('{str.__str__(self)}')"
