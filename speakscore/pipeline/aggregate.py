"""
口语评测引擎 - 分数汇总模块

负责把各维度 raw/max 合成为 10-90 分制综合分，并映射到定性等级。
"""
import logging
import math
from typing import Sequence

from speakscore.config import config
from speakscore.models import (
    ExpectedResponse,
    OverallBand,
    TaskScale,
    TaskType,
    TraitScores,
)
from speakscore.pipeline.align import normalize

logger = logging.getLogger(__name__)

SCALE_MIN = 10
SCALE_MAX = 90

# (最低分, 标签, 颜色)，从高到低
OVERALL_BANDS = (
    (85, "Expert", "#10b981"),
    (76, "Proficient", "#6366f1"),
    (59, "Competent", "#3b82f6"),
    (43, "Developing", "#f59e0b"),
    (30, "Basic", "#f97316"),
)
LOWEST_BAND = ("Needs Practice", "#ef4444")

SIX_POINT_MAX = 6
REPEAT_SENTENCE_MAX = 3


def round_half_up(value: float) -> int:
    """四舍五入（.5 向上）"""
    return int(math.floor(value + 0.5))


def band_from_thresholds(value: float, thresholds: Sequence[float], top_band: int) -> int:
    """
    阈值表分档

    thresholds 按从高到低对应 top_band, top_band-1, ...；
    统一按降序排序后再比较，保证分档随 value 单调不减。

    Returns:
        命中的档位；一个阈值都未达到时返回 top_band - len(thresholds)
    """
    ordered = sorted(thresholds, reverse=True)
    for i, cut in enumerate(ordered):
        if value >= cut:
            return top_band - i
    return top_band - len(ordered)


def task_scale(task_type: TaskType, expected: ExpectedResponse | None = None) -> TaskScale:
    """
    获取题型各维度满分

    Read Aloud 的内容满分等于参考文本词数。
    """
    if task_type == TaskType.READ_ALOUD:
        content_max = len(normalize(expected.reference_text)) if expected else 0
    elif task_type == TaskType.REPEAT_SENTENCE:
        content_max = REPEAT_SENTENCE_MAX
    elif task_type == TaskType.ANSWER_SHORT_QUESTION:
        content_max = 0
    else:
        content_max = SIX_POINT_MAX
    return TaskScale(content_max=content_max)


def calculate_overall(scores: TraitScores, task_type: TaskType) -> int:
    """
    计算综合分

    - ASQ：vocabulary == 1 时 90，否则 0
    - 其他题型：content raw 为 0 时综合分为 0（全或无规则）；
      否则 10 + (Σraw / Σmax) × 80，截断到 [10, 90]

    Args:
        scores: 各维度评分
        task_type: 题型

    Returns:
        综合分
    """
    if task_type == TaskType.ANSWER_SHORT_QUESTION:
        vocabulary = scores.vocabulary
        return SCALE_MAX if vocabulary is not None and vocabulary.raw >= 1 else 0

    content = scores.content
    if content is None or content.raw <= 0:
        logger.info("内容分为 0，综合分按规则记为 0")
        return 0

    total_raw = 0.0
    total_max = 0
    for trait in (scores.content, scores.pronunciation, scores.fluency):
        if trait is None or trait.max <= 0:
            continue
        total_raw += max(0.0, min(float(trait.raw), float(trait.max)))
        total_max += trait.max

    if total_max <= 0:
        return 0

    ratio = total_raw / total_max
    overall = round_half_up(SCALE_MIN + ratio * (SCALE_MAX - SCALE_MIN))
    return max(SCALE_MIN, min(SCALE_MAX, overall))


def band_label(score: float) -> OverallBand:
    """综合分 -> 定性等级"""
    bands = config.get("overall.bands", OVERALL_BANDS)
    for floor, label, color in sorted(bands, key=lambda b: b[0], reverse=True):
        if score >= floor:
            return OverallBand(label=label, color=color)
    return OverallBand(label=LOWEST_BAND[0], color=LOWEST_BAND[1])


def band_to_90(band: float, max_band: float) -> int:
    """把单项档位换算为 10-90 分制（用于展示）"""
    if max_band <= 0:
        return 0
    ratio = max(0.0, min(1.0, band / max_band))
    return round_half_up(SCALE_MIN + ratio * (SCALE_MAX - SCALE_MIN))
