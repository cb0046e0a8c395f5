"""
工厂函数：根据实体类型返回对应 Adapter。

新增实体只需：
  1. 在 adapters.py 新建 Adapter 类
  2. 在此处 _build_registry 加一行
  不需要修改 views / services。
"""

from ..exceptions import ValidationError
from .base import BasePayloadAdapter


def _build_registry() -> dict[str, type[BasePayloadAdapter]]:
    # 延迟导入，避免循环依赖
    from .adapters import ChildAdapter, IllnessAdapter, VisitAdapter

    return {
        "child":   ChildAdapter,
        "visit":   VisitAdapter,
        "illness": IllnessAdapter,
    }


def get_adapter(entity_type: str, raw_body, partial: bool = False) -> BasePayloadAdapter:
    """
    根据 entity_type 返回已实例化的 Adapter。

    Args:
        entity_type: "child" / "visit" / "illness"
        raw_body:    请求体（bytes / str / 已解析的 dict）
        partial:     True 表示 PUT 部分更新，不检查必填字段

    Raises:
        ValidationError: 未知的 entity_type
    """
    registry = _build_registry()
    adapter_cls = registry.get(entity_type)

    if adapter_cls is None:
        raise ValidationError(
            message=f"Unknown entity type: {entity_type!r}.",
            code="UNKNOWN_ENTITY",
            detail={"known_entities": list(registry.keys())},
        )

    return adapter_cls(raw_body=raw_body, partial=partial)
