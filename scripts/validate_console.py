"""
控制台校验脚本：跳过 HTTP 层，直接运行完整校验链路

运行方式：
    poetry run python scripts/validate_console.py                     # 使用内置 BST 样例
    poetry run python scripts/validate_console.py notes.md --type Lab --topic "Python Lists"
    poetry run python scripts/validate_console.py notes.md --semantic # 额外跑 claim 级语义溯源
    poetry run python scripts/validate_console.py notes.md --materials materials.json

传入 Markdown 文件但不传 --materials 时资料列表为空，引用溯源会报告无可用资料。
未配置 LLM_API_KEY 时质量评分会降级（quality.success=false），综合分仅由语法 + 溯源构成。
"""

import argparse
import asyncio
import json
from pathlib import Path

from material_validator.api.validation import build_content_validator, build_semantic_analyzer
from material_validator.config import get_settings
from material_validator.observability.logging_config import setup_logging
from material_validator.samples import SAMPLE_CONTENT, SAMPLE_MATERIALS, load_materials
from material_validator.validator.schemas import ValidationRequest


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="校验一份 AI 生成的课程资料")
    parser.add_argument("path", nargs="?", help="Markdown 文件路径，不传则使用内置样例")
    parser.add_argument("--topic", default="Binary Search Trees")
    parser.add_argument("--type", dest="material_type", choices=["Theory", "Lab"], default="Theory")
    parser.add_argument("--materials", help="资料清单 JSON 文件（MaterialSource 数组）")
    parser.add_argument("--semantic", action="store_true", help="额外执行 claim 级语义溯源")
    return parser.parse_args()


async def main() -> None:
    args = _parse_args()
    settings = get_settings()
    setup_logging(env=settings.ENV, level=settings.LOG_LEVEL)

    if args.path:
        content = Path(args.path).read_text(encoding="utf-8")
        materials = load_materials(args.materials) if args.materials else []
    else:
        content = SAMPLE_CONTENT
        materials = load_materials(args.materials) if args.materials else SAMPLE_MATERIALS
    request = ValidationRequest(
        content=content,
        topic=args.topic,
        type=args.material_type,
        material_sources=materials,
    )

    result = await build_content_validator(settings).validate(request)
    print(json.dumps(result.model_dump(by_alias=True, mode="json"), indent=2, ensure_ascii=False))

    if args.semantic:
        report = await build_semantic_analyzer(settings).analyze({
            "content": content,
            "topic": args.topic,
            "material_sources": materials,
        })
        print(json.dumps(report.model_dump(by_alias=True, mode="json"), indent=2, ensure_ascii=False))


if __name__ == "__main__":
    asyncio.run(main())
