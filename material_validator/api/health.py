"""
健康检查接口：探活 + 配置概览
"""

from fastapi import APIRouter, Depends

from material_validator.api.validation import get_app_settings
from material_validator.config import Settings

router = APIRouter(tags=["健康检查"])


@router.get("/health")
async def health_check(settings: Settings = Depends(get_app_settings)):
    """健康检查：服务本身无外部存储依赖，LLM 未配置 Key 时标记为 degraded（质量评分会降级）"""
    llm_configured = bool(settings.LLM_API_KEY or settings.LLM_API_BASE)
    return {
        "status": "ok" if llm_configured else "degraded",
        "app": settings.APP_NAME,
        "env": settings.ENV,
        "llm_model": settings.QUALITY_GRADER_MODEL or settings.LLM_DEFAULT_MODEL,
        "llm_configured": llm_configured,
    }
