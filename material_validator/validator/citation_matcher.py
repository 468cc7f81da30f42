"""
引用标记抽取 + 课程资料匹配（纯函数，无 I/O）

生成 Prompt 约定的引用格式：
- 内部资料：[Source: Material Name - Category]
- 外部来源：[External: Wikipedia - URL] / [External Source - Wikipedia]

匹配优先级（命中即返回）：
1. 资料标题是引用文本的子串（忽略大小写、空白）
2. 文件名（含 / 不含扩展名）是引用文本的子串
3. 资料分类是引用文本的子串
4. rapidfuzz partial_ratio(标题, 引用文本) >= 阈值，取最高分；
   引用文本短于标题的 3/4 时跳过，避免 "Notes" 这类片段命中

资料数量在几十份量级，线性扫描即可，不需要索引结构。
"""

import re
from pathlib import PurePath

from rapidfuzz import fuzz

from material_validator.validator.schemas import Citation, MaterialSource

DEFAULT_FUZZY_THRESHOLD = 85

# 模糊匹配要求引用文本至少为标题长度的这个比例
_FUZZY_MIN_LENGTH_RATIO = 0.75

# 标签 + 分隔符 + 内容；External Source - Wikipedia 这种写法也算
_CITATION_RE = re.compile(
    r"\[\s*(?P<tag>External(?:\s+Source)?|Sources?|Ref(?:erence)?s?|Citations?)"
    r"\s*(?::|-|–)\s*(?P<body>[^\]\n]+?)\s*\]",
    re.IGNORECASE,
)

_WS_RE = re.compile(r"\s+")


def normalize(text: str) -> str:
    """小写 + 折叠空白"""
    return _WS_RE.sub(" ", text.lower()).strip()


def _file_name_variants(file_name: str) -> list[str]:
    if not file_name:
        return []
    name = normalize(PurePath(file_name).name)
    stem = normalize(PurePath(file_name).stem)
    return [v for v in {name, stem} if v]


def match_citation(
    citation_text: str,
    materials: list[MaterialSource],
    fuzzy_threshold: int = DEFAULT_FUZZY_THRESHOLD,
) -> MaterialSource | None:
    """
    将一条引用文本匹配到已知课程资料。

    Args:
        citation_text:   引用内容（标记冒号后的部分）
        materials:       本次调用传入的资料列表
        fuzzy_threshold: 模糊匹配阈值（0-100）

    Returns:
        命中的资料；无法匹配返回 None
    """
    text = normalize(citation_text)
    if not text or not materials:
        return None

    for material in materials:
        title = normalize(material.title)
        if title and title in text:
            return material

    for material in materials:
        if any(variant in text for variant in _file_name_variants(material.file_name)):
            return material

    for material in materials:
        category = normalize(material.category)
        if category and category in text:
            return material

    best: MaterialSource | None = None
    best_score = 0.0
    for material in materials:
        title = normalize(material.title)
        if not title or len(text) < _FUZZY_MIN_LENGTH_RATIO * len(title):
            continue
        score = fuzz.partial_ratio(title, text)
        if score >= fuzzy_threshold and score > best_score:
            best, best_score = material, score
    return best


def extract_citations(
    content: str,
    materials: list[MaterialSource],
    fuzzy_threshold: int = DEFAULT_FUZZY_THRESHOLD,
) -> list[Citation]:
    """按出现顺序抽取全部引用标记，并逐条分类为 internal / external"""
    citations: list[Citation] = []
    for m in _CITATION_RE.finditer(content):
        body = m.group("body")
        explicit_external = m.group("tag").lower().startswith("external")

        matched = None if explicit_external else match_citation(body, materials, fuzzy_threshold)
        citations.append(Citation(
            raw_text=m.group(0),
            source_text=body,
            kind="internal" if matched is not None else "external",
            matched_material_id=matched.id if matched is not None else None,
        ))
    return citations
