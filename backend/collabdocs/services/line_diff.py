"""
Line Diff Engine

Computes a line-level edit script between two text blobs for display:
- Longest-common-subsequence table built backward, walked forward
- Deterministic tie-break (delete before insert)
- Consecutive lines with the same classification coalesced
- Size guard that refuses the quadratic work on oversized inputs

Everything here is pure; nothing touches storage or shared state.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Sequence, Tuple

DEFAULT_MAX_LINES = 4000
TRUNCATION_NOTICE = "[Diff truncated: content too large]"


class DiffOp(str, Enum):
    """Classification of a run of lines."""
    EQUAL = "equal"
    INSERT = "insert"
    DELETE = "delete"


@dataclass(frozen=True)
class DiffSegment:
    """A run of consecutive lines sharing one classification."""
    op: DiffOp
    lines: Tuple[str, ...]

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    def to_dict(self) -> Dict[str, str]:
        return {"op": self.op.value, "text": self.text}


def split_lines(text: str) -> List[str]:
    """
    Split text into lines.

    An empty string has no lines. A trailing newline yields one extra empty
    line, so ``"a\\n"`` is ``["a", ""]``.
    """
    if not text:
        return []
    return text.split("\n")


# Size-guard result; is_truncated matches it by identity, not by content.
TRUNCATED_SEGMENT = DiffSegment(DiffOp.EQUAL, (TRUNCATION_NOTICE,))


def is_truncated(segments: Sequence[DiffSegment]) -> bool:
    """True when ``segments`` came from the size guard rather than a real diff."""
    return len(segments) == 1 and segments[0] is TRUNCATED_SEGMENT


def compute_line_diff(
    base_text: str,
    target_text: str,
    max_lines: int = DEFAULT_MAX_LINES,
) -> List[DiffSegment]:
    """
    Compute the edit script turning ``base_text`` into ``target_text``.

    Args:
        base_text: Older text
        target_text: Newer text
        max_lines: Either side longer than this yields only the truncation notice

    Returns:
        Ordered list of DiffSegment
    """
    base = split_lines(base_text)
    target = split_lines(target_text)

    if len(base) > max_lines or len(target) > max_lines:
        return [TRUNCATED_SEGMENT]

    n, m = len(base), len(target)
    # dp[i][j] is the LCS length of base[i:] and target[j:]
    dp = [[0] * (m + 1) for _ in range(n + 1)]
    for i in range(n - 1, -1, -1):
        row, below = dp[i], dp[i + 1]
        for j in range(m - 1, -1, -1):
            if base[i] == target[j]:
                row[j] = below[j + 1] + 1
            else:
                row[j] = below[j] if below[j] >= row[j + 1] else row[j + 1]

    ops: List[Tuple[DiffOp, str]] = []
    i = j = 0
    while i < n and j < m:
        if base[i] == target[j]:
            ops.append((DiffOp.EQUAL, base[i]))
            i += 1
            j += 1
        elif dp[i + 1][j] >= dp[i][j + 1]:
            ops.append((DiffOp.DELETE, base[i]))
            i += 1
        else:
            ops.append((DiffOp.INSERT, target[j]))
            j += 1
    while i < n:
        ops.append((DiffOp.DELETE, base[i]))
        i += 1
    while j < m:
        ops.append((DiffOp.INSERT, target[j]))
        j += 1

    return _coalesce(ops)


def _coalesce(ops: Iterable[Tuple[DiffOp, str]]) -> List[DiffSegment]:
    segments: List[DiffSegment] = []
    current_op = None
    current_lines: List[str] = []
    for op, line in ops:
        if op is not current_op and current_lines:
            segments.append(DiffSegment(current_op, tuple(current_lines)))
            current_lines = []
        current_op = op
        current_lines.append(line)
    if current_lines:
        segments.append(DiffSegment(current_op, tuple(current_lines)))
    return segments


def segments_to_json(segments: Iterable[DiffSegment]) -> List[Dict[str, str]]:
    """Transport form: ``[{"op": "equal", "text": "..."}, ...]``."""
    return [segment.to_dict() for segment in segments]


def apply_line_diff(base_text: str, segments: Iterable[DiffSegment]) -> str:
    """
    Replay ``segments`` over ``base_text`` and return the reconstructed target.

    Raises:
        ValueError: If equal/delete segments do not match the base lines
    """
    base = split_lines(base_text)
    out: List[str] = []
    pos = 0
    for segment in segments:
        if segment.op is DiffOp.INSERT:
            out.extend(segment.lines)
            continue
        end = pos + len(segment.lines)
        if tuple(base[pos:end]) != segment.lines:
            raise ValueError(f"{segment.op.value} segment does not match base at line {pos}")
        if segment.op is DiffOp.EQUAL:
            out.extend(segment.lines)
        pos = end
    if pos != len(base):
        raise ValueError(f"Diff consumed {pos} of {len(base)} base lines")
    return "\n".join(out)
