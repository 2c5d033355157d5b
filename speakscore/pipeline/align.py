"""
口语评测引擎 - 文本对齐模块

提供文本归一化、最长公共子序列 (LCS) 对齐和编辑距离工具，
供所有评分模块使用。
"""
import re
from typing import Sequence

from speakscore.config import config
from speakscore.models import AlignmentResult

# 只保留字母、数字、撇号、连字符和空白
_STRIP_PATTERN = re.compile(r"[^\w\s'\-]|_")

CLOSE_MATCH_MAX_DISTANCE = 2
CLOSE_MATCH_MAX_RATIO = 0.5


def normalize(text: str | None) -> list[str]:
    """
    文本归一化并分词

    小写化，去掉字母/数字/撇号/连字符以外的字符，按空白切分。

    Args:
        text: 原始文本

    Returns:
        词列表
    """
    if not text:
        return []
    return _STRIP_PATTERN.sub("", text.lower()).split()


def lcs_length(a: Sequence[str], b: Sequence[str]) -> int:
    """
    计算最长公共子序列长度

    使用两行滚动数组，内存为 O(min(|a|, |b|))。
    """
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return 0

    prev = [0] * (len(b) + 1)
    curr = [0] * (len(b) + 1)
    for token_a in a:
        for j, token_b in enumerate(b, start=1):
            if token_a == token_b:
                curr[j] = prev[j - 1] + 1
            else:
                curr[j] = max(prev[j], curr[j - 1])
        prev, curr = curr, prev
    return prev[len(b)]


def lcs_alignment(a: Sequence[str], b: Sequence[str]) -> AlignmentResult:
    """
    LCS 对齐，回溯出参与匹配的位置

    Args:
        a: 期望词序列
        b: 识别词序列

    Returns:
        AlignmentResult（不含 close_matches）
    """
    n, m = len(a), len(b)
    dp = [[0] * (m + 1) for _ in range(n + 1)]

    for i in range(1, n + 1):
        for j in range(1, m + 1):
            if a[i - 1] == b[j - 1]:
                dp[i][j] = dp[i - 1][j - 1] + 1
            else:
                dp[i][j] = max(dp[i - 1][j], dp[i][j - 1])

    # backtrack
    matched_a: set[int] = set()
    matched_b: set[int] = set()
    i, j = n, m
    while i > 0 and j > 0:
        if a[i - 1] == b[j - 1]:
            matched_a.add(i - 1)
            matched_b.add(j - 1)
            i -= 1
            j -= 1
        elif dp[i - 1][j] >= dp[i][j - 1]:
            i -= 1
        else:
            j -= 1

    length = dp[n][m]
    return AlignmentResult(
        lcs_length=length,
        omissions=n - length,
        insertions=m - length,
        matched_expected=matched_a,
        matched_recognized=matched_b,
    )


def edit_distance(a: str, b: str) -> int:
    """字符级 Levenshtein 编辑距离"""
    if not a:
        return len(b)
    if not b:
        return len(a)

    matrix = [[0] * (len(b) + 1) for _ in range(len(a) + 1)]
    for i in range(len(a) + 1):
        matrix[i][0] = i
    for j in range(len(b) + 1):
        matrix[0][j] = j

    for i in range(1, len(a) + 1):
        for j in range(1, len(b) + 1):
            cost = 0 if a[i - 1] == b[j - 1] else 1
            matrix[i][j] = min(
                matrix[i - 1][j] + 1,
                matrix[i][j - 1] + 1,
                matrix[i - 1][j - 1] + cost,
            )
    return matrix[len(a)][len(b)]


def close_matches(
    unmatched_expected: Sequence[str],
    unmatched_recognized: Sequence[str],
) -> list[tuple[str, str, int]]:
    """
    贪心近似匹配

    对每个未匹配的期望词，在未被使用的识别词中寻找编辑距离最近者；
    仅当 distance <= 2 且 distance < 0.5 * max(长度) 时接受。
    每个识别词最多被使用一次。

    Returns:
        (期望词, 识别词, 距离) 列表
    """
    max_distance = config.get("align.close_match_max_distance", CLOSE_MATCH_MAX_DISTANCE)
    max_ratio = config.get("align.close_match_max_ratio", CLOSE_MATCH_MAX_RATIO)

    pairs: list[tuple[str, str, int]] = []
    used: set[int] = set()

    for expected in unmatched_expected:
        best_idx = -1
        best_dist = 0
        for idx, heard in enumerate(unmatched_recognized):
            if idx in used:
                continue
            dist = edit_distance(expected, heard)
            if best_idx < 0 or dist < best_dist:
                best_idx, best_dist = idx, dist

        if best_idx < 0:
            continue
        heard = unmatched_recognized[best_idx]
        if best_dist <= max_distance and best_dist < max_ratio * max(len(expected), len(heard)):
            pairs.append((expected, heard, best_dist))
            used.add(best_idx)

    return pairs


def align(expected: Sequence[str], recognized: Sequence[str]) -> AlignmentResult:
    """
    完整对齐：LCS + 剩余词的近似匹配

    Args:
        expected: 期望词序列（已归一化）
        recognized: 识别词序列（已归一化）

    Returns:
        AlignmentResult
    """
    result = lcs_alignment(expected, recognized)
    rest_expected = [w for i, w in enumerate(expected) if i not in result.matched_expected]
    rest_recognized = [w for j, w in enumerate(recognized) if j not in result.matched_recognized]
    result.close_matches = close_matches(rest_expected, rest_recognized)
    return result
