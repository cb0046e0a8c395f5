"""
具体 Adapter 实现。

新增实体：在此文件添加一个类，然后在 factory.py 注册即可。

已注册实体：
  child    ChildAdapter
  visit    VisitAdapter     (含 vision_refraction 嵌套对象、illnesses 数组)
  illness  IllnessAdapter
"""

from ..exceptions import ValidationError
from ..models import Child, Illness, Visit
from .base import (
    BasePayloadAdapter,
    choice,
    choice_list,
    optional_integer,
    optional_number,
    optional_string,
    parse_date,
    parse_id,
    parse_optional_bool,
    parse_optional_date,
    parse_optional_id,
    parse_optional_object,
    parse_optional_time,
    required_string,
)

GENDERS = tuple(value for value, _ in Child.GENDER_CHOICES)
VISIT_TYPES = tuple(value for value, _ in Visit.VISIT_TYPE_CHOICES)
ILLNESS_TYPES = tuple(value for value, _ in Illness.ILLNESS_TYPE_CHOICES)

REFRACTION_SIDES = ("od", "os")
REFRACTION_KEYS = ("sphere", "cylinder", "axis")


class ChildAdapter(BasePayloadAdapter):
    entity_type = "child"

    FIELDS = {
        "name": required_string(255),
        "date_of_birth": parse_date,
        "gender": choice(GENDERS),
        "notes": optional_string(),
    }
    REQUIRED = ("name", "date_of_birth", "gender")


# ── VisitAdapter ───────────────────────────────────────────────────────────
#
# 请求体示例（JSON）:
# {
#   "child_id": 1,
#   "visit_date": "2026-01-15",
#   "visit_time": "09:30",
#   "visit_type": "vision",
#   "vision_refraction": {
#     "od": {"sphere": -2.0, "cylinder": -0.5, "axis": 90},
#     "os": {"sphere": null, "cylinder": null, "axis": null}
#   },
#   "illnesses": ["flu"],
#   "notes": "Follow up in 2 weeks",
#   "updated_at": "2026-01-20T10:00:00Z"     ← 仅 PUT，乐观锁
# }
#
# 创建时额外支持 create_illness / illness_severity：
# sick 就诊且带 illnesses 时自动建一条 Illness。

class VisitAdapter(BasePayloadAdapter):
    entity_type = "visit"

    FIELDS = {
        "child_id": parse_id,
        "visit_date": parse_date,
        "visit_time": parse_optional_time,
        "visit_type": choice(VISIT_TYPES),
        "location": optional_string(255),
        "doctor_name": optional_string(255),
        "title": optional_string(255),
        "weight_value": optional_number(0, 999),
        "height_value": optional_number(0, 9999),
        "head_circumference_value": optional_number(0, 9999),
        "blood_pressure": optional_string(20),
        "heart_rate": optional_integer(0, 300),
        "symptoms": optional_string(),
        "temperature": optional_number(90, 115),
        "illness_start_date": parse_optional_date,
        "end_date": parse_optional_date,
        "treatment": optional_string(),
        "vision_refraction": parse_optional_object,
        "needs_glasses": parse_optional_bool,
        "ordered_glasses": parse_optional_bool,
        "illnesses": choice_list(ILLNESS_TYPES),
        "notes": optional_string(),
    }
    REQUIRED = ("child_id", "visit_date", "visit_type")

    CREATE_ONLY_FIELDS = {
        "create_illness": parse_optional_bool,
        "illness_severity": optional_integer(1, 10),
    }

    def __init__(self, raw_body, partial: bool = False):
        super().__init__(raw_body, partial=partial)
        if not partial:
            self.FIELDS = {**self.FIELDS, **self.CREATE_ONLY_FIELDS}

    def validate(self, payload: dict) -> None:
        self._check_date_order(payload, "illness_start_date", "end_date")

        refraction = payload.get("vision_refraction")
        if refraction is None:
            return
        errors = []
        for side, values in refraction.items():
            if side not in REFRACTION_SIDES:
                errors.append({
                    "field": "vision_refraction",
                    "message": f"vision_refraction.{side} is not a valid side (od / os)",
                })
                continue
            if values is None:
                continue
            if not isinstance(values, dict):
                errors.append({
                    "field": f"vision_refraction.{side}",
                    "message": f"vision_refraction.{side} must be an object",
                })
                continue
            for key, value in values.items():
                if key not in REFRACTION_KEYS:
                    errors.append({
                        "field": f"vision_refraction.{side}.{key}",
                        "message": f"vision_refraction.{side}.{key} is not a refraction field",
                    })
                elif value is not None and (isinstance(value, bool) or not isinstance(value, (int, float))):
                    errors.append({
                        "field": f"vision_refraction.{side}.{key}",
                        "message": f"vision_refraction.{side}.{key} must be a number or null",
                    })
        if errors:
            raise ValidationError(
                message="Request validation failed.",
                code="VALIDATION_ERROR",
                detail={"errors": errors},
            )


class IllnessAdapter(BasePayloadAdapter):
    entity_type = "illness"

    FIELDS = {
        "child_id": parse_id,
        "visit_id": parse_optional_id,
        "illness_types": choice_list(ILLNESS_TYPES, allow_empty=False),
        "start_date": parse_date,
        "end_date": parse_optional_date,
        "symptoms": optional_string(),
        "temperature": optional_number(95, 110),
        "severity": optional_integer(1, 10),
        "notes": optional_string(),
    }
    REQUIRED = ("child_id", "illness_types", "start_date")

    def validate(self, payload: dict) -> None:
        self._check_date_order(payload, "start_date", "end_date")
