"""
口语评测引擎 - 建议生成模块

基于反馈规则库，为各维度评分生成文字反馈、练习建议和升档提示。
"""
import logging
from pathlib import Path
from typing import Any

import yaml

from speakscore.models import EvaluationResult, Feedback, FluencyMetrics, TraitScore
from speakscore.pipeline.aggregate import band_to_90

logger = logging.getLogger(__name__)

# 规则库路径
RULES_PATH = Path(__file__).parent / "feedback_rules.yaml"

TOP_FLUENCY_BAND = 5

# 缓存的规则库
_rules_cache: dict[str, Any] | None = None


def load_rules() -> dict[str, Any]:
    """
    加载反馈规则库

    Returns:
        规则库数据
    """
    global _rules_cache

    if _rules_cache is not None:
        return _rules_cache

    if not RULES_PATH.exists():
        logger.warning(f"反馈规则库不存在: {RULES_PATH}")
        _rules_cache = {"messages": {}, "tips": {}, "progression": {}}
        return _rules_cache

    with open(RULES_PATH, encoding="utf-8") as f:
        _rules_cache = yaml.safe_load(f) or {"messages": {}, "tips": {}, "progression": {}}

    logger.info(f"已加载反馈规则库，共 {len(_rules_cache.get('messages', {}))} 类文案")
    return _rules_cache


def trait_message(trait: TraitScore) -> str:
    """按 10-90 分制换算后查表得到单项反馈"""
    table = load_rules().get("messages", {}).get(trait.name, [])
    score = band_to_90(trait.raw, trait.max)
    for entry in table:
        if score >= entry.get("min", 0):
            return entry.get("text", "")
    return ""


def trait_tips(trait: TraitScore) -> list[str]:
    """按档位取练习建议"""
    table = load_rules().get("tips", {}).get(trait.name, [])
    for entry in table:
        if trait.band >= entry.get("min_band", 0):
            return list(entry.get("items", []))
    return []


def pace_assessment(metrics: FluencyMetrics) -> str:
    """语速评价（目标 120-160 WPM）"""
    wpm = round(metrics.wpm)
    if 120 <= wpm <= 160:
        return f"Your pace of {wpm} words per minute is ideal (target: 120-160 WPM)."
    if 100 <= wpm < 120:
        return f"Your pace of {wpm} WPM is slightly slow. Try to speak a bit faster (target: 120-160 WPM)."
    if 160 < wpm <= 190:
        return f"Your pace of {wpm} WPM is slightly fast. Slow down a bit for better clarity (target: 120-160 WPM)."
    if wpm < 100:
        return f"Your pace of {wpm} WPM is too slow. This affects your fluency score significantly."
    return f"Your pace of {wpm} WPM is too fast. Slow down to ensure clarity and accuracy."


def progression_tip(fluency_band: int) -> str:
    """流利度升档提示；已是最高档时返回空字符串"""
    if fluency_band >= TOP_FLUENCY_BAND:
        return ""
    next_band = min(TOP_FLUENCY_BAND, max(0, fluency_band) + 1)
    requirements = load_rules().get("progression", {})
    requirement = requirements.get(next_band) or requirements.get(str(next_band), "")
    return f"To reach Band {next_band}: {requirement}" if requirement else ""


def generate_feedback(result: EvaluationResult) -> Feedback:
    """
    生成改进建议

    Args:
        result: 评测结果（各维度评分、综合分、流利度指标）

    Returns:
        反馈建议
    """
    feedback = Feedback(
        summary=f'Your overall performance is at the "{result.band.label}" level ({result.overall_score}/90).'
    )
    scores = result.scores

    for trait in (scores.content, scores.pronunciation, scores.fluency, scores.vocabulary):
        if trait is None:
            continue
        message = trait_message(trait)
        if message:
            feedback.messages.append(message)

    if result.fluency_metrics is not None and result.fluency_metrics.word_count > 0 and result.fluency_metrics.wpm > 0:
        feedback.messages.append(pace_assessment(result.fluency_metrics))

    for trait in (scores.pronunciation, scores.fluency):
        if trait is None:
            continue
        for tip in trait_tips(trait):
            if tip not in feedback.tips:
                feedback.tips.append(tip)

    if scores.fluency is not None:
        feedback.progression_tip = progression_tip(scores.fluency.band)

    logger.info(
        f"建议生成完成: 反馈数={len(feedback.messages)}, "
        f"建议数={len(feedback.tips)}, 升档提示={'有' if feedback.progression_tip else '无'}"
    )
    return feedback
