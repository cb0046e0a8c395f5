import logging
from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=10,   # 初始重试延迟（秒），指数退避会乘以 2^retry_count
    acks_late=True,           # 任务执行完才 ack，防止 worker 崩溃时审计丢失
    reject_on_worker_lost=True,
)
def record_audit_event_task(self, payload: dict):
    """
    异步写入审计记录（AUDIT_ASYNC=1 时由 record_audit_event_safely 在提交后投递）。

    重试策略：
      - 最多重试 3 次
      - 指数退避：10s → 20s → 40s
      - 参数本身不合法（未知 entity_type / action）不重试
    """
    from childhealth.audit.recorder import record_audit_event
    from childhealth.audit.types import AuditEventParams

    params = AuditEventParams.from_task_payload(payload)
    logger.info("[Celery][record_audit_event] %s %s id=%s (attempt %d/%d)",
                params.action, params.entity_type, params.entity_id,
                self.request.retries + 1, self.max_retries + 1)

    try:
        event = record_audit_event(params)
    except ValueError:
        logger.error("[Celery] 审计参数不合法，跳过: %s %s id=%s",
                     params.action, params.entity_type, params.entity_id)
        return None
    except Exception as exc:
        logger.warning(
            "[Celery] 审计写入失败 %s id=%s (attempt %d): %s",
            params.entity_type, params.entity_id, self.request.retries + 1, str(exc)
        )
        if self.request.retries < self.max_retries:
            countdown = self.default_retry_delay * (2 ** self.request.retries)
            logger.info("[Celery] 将在 %ds 后重试 (第 %d 次)...", countdown, self.request.retries + 1)
            raise self.retry(exc=exc, countdown=countdown)
        logger.error("[Celery] %s id=%s 已达最大重试次数，审计记录丢弃",
                     params.entity_type, params.entity_id)
        return None

    return event.id
