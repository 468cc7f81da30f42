"""内容校验：代码语法 + 引用溯源 + AI 质量评分 → 综合评分"""

from material_validator.validator.content_validator import ContentValidator
from material_validator.validator.quality_grader import QualityGrader
from material_validator.validator.schemas import ValidationRequest, ValidationResult
from material_validator.validator.semantic_grounding import SemanticGroundingAnalyzer

__all__ = [
    "ContentValidator",
    "QualityGrader",
    "SemanticGroundingAnalyzer",
    "ValidationRequest",
    "ValidationResult",
]
