"""System status endpoint."""

from fastapi import APIRouter

from prescience.core.dependencies import PipelineDep
from prescience.storage.files import count_entries

router = APIRouter()


@router.get("/status")
async def system_status(pipeline: PipelineDep) -> dict[str, object]:
    settings = pipeline.settings
    scheduler = pipeline.scheduler
    return {
        "env": settings.env,
        "scheduler_running": scheduler is not None and scheduler.running,
        "scan_cached": pipeline.tier1.cached() is not None,
        "telegram_enabled": bool(settings.telegram_bot_token and settings.telegram_chat_id),
        "pro_subscribers": count_entries(settings.subscribers_path),
        "delay_queue": count_entries(settings.delay_queue_path),
        "post_log_entries": count_entries(settings.post_log_path),
        "receipts": count_entries(settings.receipts_path),
    }
