"""
Work Log Classifier

Rule-based extraction of a structured work-log entry from chat text.
Deterministic keyword and pattern matching: keyword checks run on the
lower-cased text, name patterns and tags on the original text.

The size limits below are part of the output contract shared with the UI
and are intentionally not configurable.
"""

import json
import re
from typing import Any, Iterable, List, Optional, Tuple

from ..common.errors import ClassificationFault
from ..common.schemas import Category, ClassificationResult, Priority, WorkStatus


TITLE_MAX_LENGTH = 50
MAX_PARTICIPANTS = 10
CONTENT_MAX_LENGTH = 2000
SUMMARY_MAX_LENGTH = 200
SUMMARY_LINES = 3

UNTITLED = "未命名日志"

# First matching rule wins
CATEGORY_RULES: List[Tuple[Category, Tuple[str, ...]]] = [
    (Category.BUG, ("bug", "错误", "问题")),
    (Category.TASK, ("任务", "需求", "开发")),
    (Category.MEETING, ("会议", "讨论", "评审")),
    (Category.PROGRESS, ("完成", "进度", "状态")),
]

HIGH_PRIORITY_INDICATORS = ("紧急", "urgent", "高优先级")
LOW_PRIORITY_INDICATORS = ("低优先级", "low priority")

STATUS_RULES: List[Tuple[WorkStatus, Tuple[str, ...]]] = [
    (WorkStatus.COMPLETED, ("完成", "done")),
    (WorkStatus.IN_PROGRESS, ("进行中", "in progress")),
    (WorkStatus.NOT_STARTED, ("待开始", "todo")),
]

# frontend, backend, testing, deployment, optimization, refactor, fix
TAG_VOCABULARY = ("前端", "后端", "测试", "部署", "优化", "重构", "修复")

PARTICIPANT_PATTERNS = [
    re.compile(r"@(\w+)", re.ASCII),
    re.compile(r"[A-Z][a-z]+ [A-Z][a-z]+"),
    re.compile(r"[一-龥]{2,4}"),
]


def _contains_any(text: str, indicators: Iterable[str]) -> bool:
    return any(indicator in text for indicator in indicators)


def _non_blank_lines(text: str) -> List[str]:
    return [line for line in text.split("\n") if line.strip()]


def detect_category(lowered: str) -> Category:
    """Category from lower-cased text"""
    for category, keywords in CATEGORY_RULES:
        if _contains_any(lowered, keywords):
            return category
    return Category.OTHER


def detect_priority(lowered: str) -> Priority:
    """Priority from lower-cased text, medium by default"""
    if _contains_any(lowered, HIGH_PRIORITY_INDICATORS):
        return Priority.HIGH
    if _contains_any(lowered, LOW_PRIORITY_INDICATORS):
        return Priority.LOW
    return Priority.MEDIUM


def detect_status(lowered: str) -> Optional[WorkStatus]:
    """Status from lower-cased text, None when no status keyword appears"""
    for status, keywords in STATUS_RULES:
        if _contains_any(lowered, keywords):
            return status
    return None


def extract_participants(text: str) -> List[str]:
    """
    Collect participant names.

    Mentions (ASCII word characters after @) come first, then Latin
    "Firstname Lastname" pairs, then CJK runs of 2-4 characters. Duplicates
    keep their first position.
    """
    found: List[str] = []
    for pattern in PARTICIPANT_PATTERNS:
        for match in pattern.finditer(text):
            found.append(match.group(0).replace("@", ""))

    unique = list(dict.fromkeys(found))
    return unique[:MAX_PARTICIPANTS]


def extract_tags(text: str) -> Optional[List[str]]:
    """Vocabulary terms present in text, in vocabulary order; None if none"""
    tags = [keyword for keyword in TAG_VOCABULARY if keyword in text]
    return tags or None


def classify(text: str, project: Optional[str] = None) -> ClassificationResult:
    """
    Classify chat text into a work-log template.

    Lengths (title, content, summary) count Python characters, i.e. code
    points; an emoji counts as one.

    Args:
        text: Message text (one or more lines)
        project: Optional project the entry belongs to

    Returns:
        ClassificationResult

    Raises:
        ClassificationFault: If text is not a string
    """
    if not isinstance(text, str):
        raise ClassificationFault(f"cannot classify {type(text).__name__}")

    lowered = text.lower()
    lines = _non_blank_lines(text)

    title = lines[0].strip()[:TITLE_MAX_LENGTH] if lines else ""

    return ClassificationResult(
        project=project or None,
        category=detect_category(lowered),
        title=title or UNTITLED,
        participants=extract_participants(text),
        content=text[:CONTENT_MAX_LENGTH],
        status=detect_status(lowered),
        priority=detect_priority(lowered),
        tags=extract_tags(text),
        summary=" ".join(lines[:SUMMARY_LINES])[:SUMMARY_MAX_LENGTH],
    )


def combine_messages(messages: List[Any]) -> str:
    """
    Flatten an extraction request's messages into one newline-joined text.

    Each item may be a string, an object with ``content`` or ``text``, or
    anything else JSON-serializable (serialized as-is).
    """
    parts = []
    for message in messages:
        if isinstance(message, str):
            parts.append(message)
        elif isinstance(message, dict) and (message.get("content") or message.get("text")):
            parts.append(str(message.get("content") or message.get("text")))
        else:
            parts.append(json.dumps(message, ensure_ascii=False))
    return "\n".join(parts)
