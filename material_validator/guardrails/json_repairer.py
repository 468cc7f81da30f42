"""
LLM 回复的 JSON 修复

评分、claim 抽取、事实比对三处 LLM 回复共用，常见问题：
- 整段包在 ```json ... ``` 代码块里
- 对象前后夹带说明文字（"Here is the evaluation: {...} Let me know..."）
- 说明文字里也有花括号，贪婪匹配会把两段拼在一起
- 回复被 max_tokens 截断，对象没有闭合
- 尾逗号、单引号、缺失引号（交给 json-repair）

提取策略：从第一个 "{" 开始按深度扫描（跳过字符串内的括号），取第一个闭合的对象；
扫描到结尾仍未闭合时保留到结尾，让 json-repair 补齐。
"""

import json

import structlog
from json_repair import repair_json

log = structlog.get_logger()


def _strip_fence(text: str) -> str:
    """去掉首尾的 Markdown 代码块标记行"""
    lines = text.strip().splitlines()
    if lines and lines[0].lstrip().startswith("```"):
        lines = lines[1:]
    if lines and lines[-1].strip().startswith("```"):
        lines = lines[:-1]
    return "\n".join(lines)


def _first_object(text: str) -> str | None:
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for pos in range(start, len(text)):
        ch = text[pos]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:pos + 1]
    # 被截断
    return text[start:]


class JsonRepairer:
    """把 LLM 的文本回复还原成 dict"""

    def repair(self, raw: str, required_keys: tuple[str, ...] = ()) -> dict:
        """
        Args:
            raw:           LLM 原始回复
            required_keys: 结果中必须存在的顶层字段

        Raises:
            ValueError: 空回复、找不到 JSON 对象、修复失败或缺少必需字段
        """
        if not isinstance(raw, str) or not raw.strip():
            raise ValueError("LLM 回复为空")

        candidate = _first_object(_strip_fence(raw))
        if candidate is None:
            raise ValueError("LLM 回复中没有 JSON 对象")

        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            try:
                data = json.loads(repair_json(candidate, return_objects=False))
            except json.JSONDecodeError as e:
                log.warning("JSON 修复失败", raw_preview=raw[:200], error=str(e))
                raise ValueError(f"JSON 修复失败: {e}") from e

        if not isinstance(data, dict):
            raise ValueError(f"期望 JSON 对象，实际得到 {type(data).__name__}")

        missing = [key for key in required_keys if key not in data]
        if missing:
            raise ValueError(f"JSON 缺少字段: {', '.join(missing)}")

        return data


json_repairer = JsonRepairer()
