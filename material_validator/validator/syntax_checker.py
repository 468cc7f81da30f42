"""
代码语法校验（确定性，零 LLM 成本）

原理：
1. 从生成的 Markdown 中抽取所有 fenced 代码块（```lang ... ```），缺省语言记为 text
2. 按语言选择校验方式：
   - Python / JSON：真实解析（ast.parse / json.loads），不执行代码
   - C 系、JS/TS、Java、Go、Rust、SQL 等：括号配对 + 未闭合字符串的启发式扫描
     （跳过字符串、多行字符串、Rust 字符、JS 正则字面量与注释，避免 "{" 出现在其中误报）
   - 纯文本、mermaid、shell 输出等：跳过，不计为缺陷
3. 单个代码块校验异常只记录在该块上，不中断其余块的扫描

注意：
- 启发式只保证“结构上闭合”，不保证能编译
- 没有代码块时 has_code=False，语法维度在综合评分中按满分（中性）处理
"""

from __future__ import annotations

import ast
import json
import re
import textwrap
from dataclasses import dataclass

import structlog

from material_validator.observability.metrics import FALLBACK_TOTAL
from material_validator.validator.schemas import CodeBlock, CodeBlockResult, SyntaxReport

log = structlog.get_logger()

# ```lang 与 ``` 之间的内容；语言标签允许 c++ / c# / objective-c 这类写法
_CODE_BLOCK_RE = re.compile(r"^[ \t]*```[ \t]*([\w+#.-]*)[^\n]*\n(.*?)^[ \t]*```", re.DOTALL | re.MULTILINE)

_BRACKET_PAIRS = {")": "(", "]": "[", "}": "{"}
_OPENERS = set(_BRACKET_PAIRS.values())


@dataclass(frozen=True)
class _LanguageProfile:
    """启发式扫描所需的词法特征"""
    line_comments: tuple[str, ...] = ("//",)
    block_comment: tuple[str, str] | None = ("/*", "*/")
    quotes: str = "\"'"
    multiline_quotes: str = ""  # 允许跨行的引号，如 JS 模板字符串
    triple_quotes: tuple[str, ...] = ()  # 跨行字符串定界符，如 Kotlin """raw"""
    char_literals: bool = False  # Rust 'x' 字符字面量；不闭合的 'a 视为生命周期
    regex_literals: bool = False  # JS /.../ 正则字面量


_C_FAMILY = _LanguageProfile()
_JVM_FAMILY = _LanguageProfile(triple_quotes=('"""',))  # Java 文本块、Kotlin / Scala / Swift 多行字符串
_DART = _LanguageProfile(triple_quotes=('"""', "'''"))
_JS_FAMILY = _LanguageProfile(quotes="\"'`", multiline_quotes="`", regex_literals=True)
_GO = _LanguageProfile(quotes="\"'`", multiline_quotes="`")
_RUST = _LanguageProfile(quotes='"', char_literals=True)
_SQL = _LanguageProfile(line_comments=("--",), quotes="'\"")
_PHP = _LanguageProfile(line_comments=("//", "#"))

_HEURISTIC_PROFILES: dict[str, _LanguageProfile] = {
    "javascript": _JS_FAMILY,
    "js": _JS_FAMILY,
    "jsx": _JS_FAMILY,
    "typescript": _JS_FAMILY,
    "ts": _JS_FAMILY,
    "tsx": _JS_FAMILY,
    "java": _JVM_FAMILY,
    "c": _C_FAMILY,
    "h": _C_FAMILY,
    "cpp": _C_FAMILY,
    "c++": _C_FAMILY,
    "cc": _C_FAMILY,
    "hpp": _C_FAMILY,
    "csharp": _C_FAMILY,
    "cs": _C_FAMILY,
    "c#": _C_FAMILY,
    "kotlin": _JVM_FAMILY,
    "kt": _JVM_FAMILY,
    "swift": _JVM_FAMILY,
    "scala": _JVM_FAMILY,
    "dart": _DART,
    "go": _GO,
    "golang": _GO,
    "rust": _RUST,
    "rs": _RUST,
    "php": _PHP,
    "sql": _SQL,
}

# '\n' / '\x7f' / '\u{1F600}' / 'x'
_RUST_CHAR_RE = re.compile(r"'(?:\\(?:x[0-9a-fA-F]{2}|u\{[0-9a-fA-F]{1,6}\}|.)|[^\\'\n])'")

# 出现在这些符号或关键字之后的 / 是正则字面量的开头，否则是除号
_REGEX_PRECEDING_CHARS = set("(,=:[!&|?{};+-*%<>~^")
_REGEX_PRECEDING_WORD_RE = re.compile(r"\b(?:return|typeof|case|do|else|in|of|new|delete|void|throw|yield|await)$")

_PYTHON_TAGS = {"python", "py", "python3", "py3"}
_JSON_TAGS = {"json"}


def extract_code_blocks(content: str) -> list[CodeBlock]:
    """按出现顺序抽取全部 fenced 代码块"""
    blocks: list[CodeBlock] = []
    for m in _CODE_BLOCK_RE.finditer(content):
        language = (m.group(1) or "text").lower()
        start_line = content.count("\n", 0, m.start()) + 1
        # 列表项内缩进的代码块先去掉公共缩进，否则 Python 解析会误报
        code = textwrap.dedent(m.group(2))
        blocks.append(CodeBlock(language=language, code=code, start_line=start_line))
    return blocks


def _check_python(code: str) -> str | None:
    try:
        ast.parse(code)
    except SyntaxError as e:  # 含 IndentationError
        return f"line {e.lineno}: {e.msg}"
    except ValueError as e:  # 源码含 NUL 字节等
        return str(e)
    return None


def _check_json(code: str) -> str | None:
    try:
        json.loads(code)
    except json.JSONDecodeError as e:
        return f"line {e.lineno} column {e.colno}: {e.msg}"
    return None


def _regex_literal_end(code: str, i: int) -> int | None:
    """code[i] 是 /；若此处是正则字面量，返回其结束位置，否则返回 None"""
    before = code[:i].rstrip()
    if before and before[-1] not in _REGEX_PRECEDING_CHARS and not _REGEX_PRECEDING_WORD_RE.search(before):
        return None

    in_class = False
    j = i + 1
    while j < len(code):
        c = code[j]
        if c == "\n":
            return None
        if c == "\\":
            j += 2
            continue
        if c == "[":
            in_class = True
        elif c == "]":
            in_class = False
        elif c == "/" and not in_class:
            return j + 1
        j += 1
    return None


def _check_brackets(code: str, profile: _LanguageProfile) -> str | None:
    """括号配对 + 未闭合字符串扫描，返回第一个错误描述"""
    stack: list[tuple[str, int]] = []
    line = 1
    i = 0
    n = len(code)

    while i < n:
        ch = code[i]

        if ch == "\n":
            line += 1
            i += 1
            continue

        # 行注释
        if any(code.startswith(marker, i) for marker in profile.line_comments):
            newline = code.find("\n", i)
            i = n if newline == -1 else newline
            continue

        # 块注释
        if profile.block_comment and code.startswith(profile.block_comment[0], i):
            end = code.find(profile.block_comment[1], i + len(profile.block_comment[0]))
            if end == -1:
                return f"line {line}: unterminated block comment"
            line += code.count("\n", i, end)
            i = end + len(profile.block_comment[1])
            continue

        # 跨行字符串
        triple = next((q for q in profile.triple_quotes if code.startswith(q, i)), None)
        if triple:
            end = code.find(triple, i + len(triple))
            if end == -1:
                return f"line {line}: unterminated string literal"
            line += code.count("\n", i, end)
            i = end + len(triple)
            continue

        if profile.char_literals and ch == "'":
            m = _RUST_CHAR_RE.match(code, i)
            i = m.end() if m else i + 1
            continue

        if profile.regex_literals and ch == "/":
            end = _regex_literal_end(code, i)
            if end is not None:
                i = end
                continue

        # 字符串字面量
        if ch in profile.quotes:
            start_line = line
            i += 1
            while i < n and code[i] != ch:
                if code[i] == "\\":
                    if i + 1 < n and code[i + 1] == "\n":
                        line += 1
                    i += 2
                    continue
                if code[i] == "\n":
                    if ch not in profile.multiline_quotes:
                        return f"line {start_line}: unterminated string literal"
                    line += 1
                i += 1
            if i >= n:
                return f"line {start_line}: unterminated string literal"
            i += 1
            continue

        if ch in _OPENERS:
            stack.append((ch, line))
        elif ch in _BRACKET_PAIRS:
            if not stack:
                return f"line {line}: unexpected '{ch}'"
            opener, open_line = stack.pop()
            if opener != _BRACKET_PAIRS[ch]:
                return f"line {line}: '{ch}' does not match '{opener}' opened on line {open_line}"
        i += 1

    if stack:
        opener, open_line = stack[-1]
        return f"line {open_line}: '{opener}' is never closed"
    return None


def check_block(block: CodeBlock) -> CodeBlockResult:
    """校验单个代码块"""
    language = block.language

    if language in _PYTHON_TAGS:
        error, checker = _check_python(block.code), "parser"
    elif language in _JSON_TAGS:
        error, checker = _check_json(block.code), "parser"
    elif language in _HEURISTIC_PROFILES:
        error, checker = _check_brackets(block.code, _HEURISTIC_PROFILES[language]), "heuristic"
    else:
        return CodeBlockResult(
            language=language,
            is_valid=True,
            skipped=True,
            checker="none",
            start_line=block.start_line,
        )

    return CodeBlockResult(
        language=language,
        is_valid=error is None,
        error=error,
        checker=checker,
        start_line=block.start_line,
    )


def check_syntax(content: str) -> SyntaxReport:
    """
    校验正文中所有代码块的语法。

    Returns:
        SyntaxReport（无代码块时 has_code=False、all_valid=True）
    """
    blocks = extract_code_blocks(content)
    if not blocks:
        return SyntaxReport(has_code=False, message="No code blocks found")

    details: list[CodeBlockResult] = []
    for block in blocks:
        try:
            details.append(check_block(block))
        except Exception as e:
            # 单块校验器异常：记为无效，继续扫描其余代码块
            log.warning(
                "代码块校验异常，记为无效",
                language=block.language,
                start_line=block.start_line,
                error=str(e),
            )
            FALLBACK_TOTAL.labels(analyzer="syntax_block", reason=type(e).__name__).inc()
            details.append(CodeBlockResult(
                language=block.language,
                is_valid=False,
                error=f"checker error: {e}",
                start_line=block.start_line,
            ))

    valid = sum(1 for d in details if d.is_valid)
    invalid = len(details) - valid
    skipped = sum(1 for d in details if d.skipped)

    if invalid:
        message = f"{invalid} code block(s) have syntax errors"
        log.info("代码语法校验发现错误", blocks=len(details), invalid=invalid)
    else:
        message = f"All {len(details)} code block(s) passed syntax checks"

    return SyntaxReport(
        has_code=True,
        blocks_checked=len(details),
        valid_blocks=valid,
        invalid_blocks=invalid,
        skipped_blocks=skipped,
        all_valid=invalid == 0,
        details=details,
        message=message,
    )
