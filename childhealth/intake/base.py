"""
BasePayloadAdapter: 所有实体 payload Adapter 的抽象基类。

三步流水线：parse → transform → validate

  parse      原始请求体（bytes / str / dict）→ dict
  transform  只保留 FIELDS 里声明、且请求体里真的出现的 key，逐个字段解析
  validate   跨字段校验（例如 end_date 不能早于 start_date），子类可 override

partial=True（PUT 更新）时，payload 只包含请求体里出现的字段，
build_field_diff() 依赖这一点区分"没提交"和"提交了 null"。
"""

import json
import re
from abc import ABC
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

from django.utils.dateparse import parse_datetime

from ..exceptions import ValidationError

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")
TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(:\d{2})?$")


class FieldError(Exception):
    """单个字段解析失败，由 transform() 收集成 errors 列表。"""


# ── 字段解析器（可直接复用）──────────────────────────────────────────────

def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def parse_date(value) -> date:
    if _is_blank(value):
        raise FieldError("is required")
    if isinstance(value, date):
        return value if not isinstance(value, datetime) else value.date()
    if not isinstance(value, str) or not DATE_RE.match(value.strip()):
        raise FieldError("must be a valid date (YYYY-MM-DD)")
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        raise FieldError("must be a valid date (YYYY-MM-DD)")


def parse_optional_date(value):
    if _is_blank(value):
        return None
    return parse_date(value)


def parse_optional_time(value):
    """"HH:MM" 或 "HH:MM:SS" → "HH:MM"。"""
    if _is_blank(value):
        return None
    if not isinstance(value, str):
        raise FieldError("must be a string (HH:MM)")
    match = TIME_RE.match(value.strip())
    if not match:
        raise FieldError("must be HH:MM or HH:MM:SS")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise FieldError("must be a valid time of day")
    return f"{hour:02d}:{minute:02d}"


def optional_number(min_value=None, max_value=None) -> Callable[[Any], Any]:
    def parser(value):
        if _is_blank(value):
            return None
        if isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
            raise FieldError("must be a number")
        try:
            number = Decimal(str(value).strip())
        except InvalidOperation:
            raise FieldError("must be a number")
        if not number.is_finite():
            raise FieldError("must be a number")
        if min_value is not None and number < min_value:
            raise FieldError(f"must be at least {min_value}")
        if max_value is not None and number > max_value:
            raise FieldError(f"must be at most {max_value}")
        return number
    return parser


def optional_integer(min_value=None, max_value=None) -> Callable[[Any], Any]:
    number_parser = optional_number(min_value, max_value)

    def parser(value):
        number = number_parser(value)
        if number is None:
            return None
        if number != number.to_integral_value():
            raise FieldError("must be a whole number")
        return int(number)
    return parser


def optional_string(max_length=None) -> Callable[[Any], Any]:
    def parser(value):
        if _is_blank(value):
            return None
        if not isinstance(value, str):
            raise FieldError("must be a string")
        value = value.strip()
        if max_length is not None and len(value) > max_length:
            raise FieldError(f"must be at most {max_length} characters")
        return value
    return parser


def required_string(max_length=None) -> Callable[[Any], Any]:
    string_parser = optional_string(max_length)

    def parser(value):
        result = string_parser(value)
        if result is None:
            raise FieldError("is required")
        return result
    return parser


def choice(choices) -> Callable[[Any], Any]:
    def parser(value):
        if value not in choices:
            raise FieldError(f"must be one of: {', '.join(choices)}")
        return value
    return parser


def choice_list(choices, allow_empty=True) -> Callable[[Any], Any]:
    def parser(value):
        if value is None:
            if allow_empty:
                return None
            raise FieldError("is required")
        if not isinstance(value, list):
            raise FieldError("must be an array of strings")
        for i, item in enumerate(value):
            if item not in choices:
                raise FieldError(f"[{i}] must be one of: {', '.join(choices)}")
        if not value and not allow_empty:
            raise FieldError("must contain at least one item")
        return value or None
    return parser


def parse_optional_bool(value):
    if value is None:
        return None
    if not isinstance(value, bool):
        raise FieldError("must be true or false")
    return value


def parse_optional_object(value):
    if value is None:
        return None
    if not isinstance(value, dict):
        raise FieldError("must be an object")
    return value


def parse_id(value):
    if isinstance(value, bool):
        raise FieldError("must be an integer id")
    try:
        result = int(value)
    except (TypeError, ValueError):
        raise FieldError("must be an integer id")
    if result < 1 or str(result) != str(value).strip():
        raise FieldError("must be an integer id")
    return result


def parse_optional_id(value):
    if _is_blank(value):
        return None
    return parse_id(value)


# ── Adapter 基类 ──────────────────────────────────────────────────────────

class BasePayloadAdapter(ABC):
    """
    子类声明：
      entity_type  与 factory 注册键一致
      FIELDS       {字段名: 解析器}
      REQUIRED     创建时必须出现的字段
    """

    entity_type: str = ""
    FIELDS: dict[str, Callable[[Any], Any]] = {}
    REQUIRED: tuple[str, ...] = ()

    def __init__(self, raw_body, partial: bool = False):
        self._raw_body = raw_body
        self.partial = partial
        self._parsed: dict = {}
        # 乐观锁：客户端读取时的 updated_at（只在 partial 更新时使用）
        self.client_updated_at = None

    def parse(self) -> dict:
        raw = self._raw_body
        if isinstance(raw, (bytes, str)):
            try:
                raw = json.loads(raw or "{}")
            except ValueError:
                raise ValidationError(
                    message="Request body must be valid JSON.",
                    code="INVALID_BODY",
                )
        if not isinstance(raw, dict):
            raise ValidationError(
                message="Request body must be a JSON object.",
                code="INVALID_BODY",
            )
        self._parsed = raw
        return raw

    def transform(self) -> dict:
        """按请求体的 key 顺序解析已知字段；未知字段忽略。"""
        payload = {}
        errors = []

        for key, value in self._parsed.items():
            parser = self.FIELDS.get(key)
            if parser is None:
                continue
            try:
                payload[key] = parser(value)
            except FieldError as exc:
                errors.append({"field": key, "message": f"{key} {exc}"})

        if not self.partial:
            for key in self.REQUIRED:
                if key not in self._parsed:
                    errors.append({"field": key, "message": f"{key} is required"})

        if self.partial and self._parsed.get("updated_at"):
            raw_updated_at = self._parsed["updated_at"]
            try:
                parsed = parse_datetime(raw_updated_at) if isinstance(raw_updated_at, str) else None
            except ValueError:
                parsed = None
            if parsed is None:
                errors.append({"field": "updated_at", "message": "updated_at must be an ISO datetime"})
            self.client_updated_at = parsed

        if errors:
            raise ValidationError(
                message="Request validation failed.",
                code="VALIDATION_ERROR",
                detail={"errors": errors},
            )
        return payload

    def validate(self, payload: dict) -> None:
        """跨字段校验，默认无。子类 override 并抛 ValidationError。"""

    def process(self) -> dict:
        """parse → transform → validate，返回校验通过的 payload。"""
        self.parse()
        payload = self.transform()
        self.validate(payload)
        return payload

    @staticmethod
    def _check_date_order(payload, start_key, end_key):
        """end 不能早于 start（两端都在 payload 里时才检查）。"""
        start = payload.get(start_key)
        end = payload.get(end_key)
        if start is not None and end is not None and end < start:
            raise ValidationError(
                message="Request validation failed.",
                code="VALIDATION_ERROR",
                detail={"errors": [{
                    "field": end_key,
                    "message": f"{end_key} must be on or after {start_key}",
                }]},
            )
