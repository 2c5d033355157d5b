"""
口语评测引擎 - 维度评分模块

基于识别置信度、词到达时间和对齐结果计算发音 (0-5) 与流利度 (0-5) 档位。
"""
import logging

from speakscore.config import config
from speakscore.models import (
    ContentScore,
    FluencyMetrics,
    TraitScore,
    Utterance,
    as_finite,
)
from speakscore.pipeline.aggregate import band_from_thresholds
from speakscore.pipeline.align import align, normalize

logger = logging.getLogger(__name__)

TRAIT_MAX_BAND = 5

PRONUNCIATION_BAND_THRESHOLDS = (0.82, 0.68, 0.52, 0.35, 0.18)
PRONUNCIATION_DESCRIPTORS = ("Non-English", "Intrusive", "Intermediate", "Good", "Advanced", "Highly Proficient")

SEQ_ACCURACY_WEIGHT = 0.35
CONFIDENCE_WEIGHT = 0.30
COMBINED_WEIGHT = 0.20
PHONETIC_BONUS_MAX = 0.15

# 短句高置信度压制：<= 3 词且置信度 > 0.9 时降为 0.85
OVERCONFIDENT_MAX_WORDS = 3
OVERCONFIDENT_THRESHOLD = 0.9
OVERCONFIDENT_VALUE = 0.85
# 低置信度但序列准确时向序列准确率靠拢
LOW_CONFIDENCE_THRESHOLD = 0.7
HIGH_SEQ_ACCURACY = 0.8
CONFIDENCE_BOOST_RATE = 0.5

# (词数比例上限, 扣分)，比例低于上限即扣分，取最重的一档
LENGTH_PENALTIES = ((0.3, 0.30), (0.5, 0.15), (0.7, 0.05))

FLUENCY_DESCRIPTORS = ("Disfluent", "Limited", "Intermediate", "Good", "Advanced", "Highly Proficient")
LONG_PAUSE_MS = 3000
HESITATION_MS = 1500
SHORT_RESPONSE_RATIO = 0.30
VERY_SHORT_RESPONSE_RATIO = 0.15


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    # 非有限值按 0 处理
    return max(low, min(high, as_finite(value)))


def adjust_confidence(confidence: float, word_count: int, seq_accuracy: float) -> float:
    """
    调整识别置信度

    - 说得很少却置信度极高时压低（短句过度自信）
    - 置信度低但序列准确率高时向准确率靠拢（口音重但可懂）
    """
    adjusted = _clamp(confidence)
    if word_count <= OVERCONFIDENT_MAX_WORDS and adjusted > OVERCONFIDENT_THRESHOLD:
        adjusted = config.get("pronunciation.overconfident_value", OVERCONFIDENT_VALUE)
    if adjusted < LOW_CONFIDENCE_THRESHOLD and seq_accuracy >= HIGH_SEQ_ACCURACY:
        adjusted += (seq_accuracy - adjusted) * CONFIDENCE_BOOST_RATE
    return _clamp(adjusted)


def length_penalty(recognized_count: int, expected_count: int) -> float:
    """回答词数明显少于期望时的扣分"""
    if expected_count <= 0:
        return 0.0
    ratio = recognized_count / expected_count
    penalties = config.get("pronunciation.length_penalties", LENGTH_PENALTIES)
    for limit, penalty in sorted(penalties, key=lambda p: p[0]):
        if ratio < limit:
            return float(penalty)
    return 0.0


def pronunciation_value(confidence: float, recognized_text: str, expected_text: str = "") -> float:
    """
    计算发音综合值 (0-1)

    四个信号混合：序列准确率、调整后置信度（及两者乘积）、
    近似匹配奖励、长度扣分。无参考文本时序列准确率取置信度。
    """
    recognized = normalize(recognized_text)
    expected = normalize(expected_text)
    if not recognized:
        return 0.0

    confidence = _clamp(confidence)
    bonus = 0.0
    penalty = 0.0

    if expected:
        alignment = align(expected, recognized)
        seq_accuracy = _clamp(1 - (alignment.omissions + alignment.insertions) / len(expected))
        if alignment.omissions > 0:
            bonus = PHONETIC_BONUS_MAX * len(alignment.close_matches) / alignment.omissions
        penalty = length_penalty(len(recognized), len(expected))
    else:
        seq_accuracy = confidence

    adjusted = adjust_confidence(confidence, len(recognized), seq_accuracy)
    value = (
        SEQ_ACCURACY_WEIGHT * seq_accuracy
        + CONFIDENCE_WEIGHT * adjusted
        + COMBINED_WEIGHT * seq_accuracy * adjusted
        + bonus
        - penalty
    )
    logger.debug(
        f"发音信号: seq={seq_accuracy:.2f}, conf={adjusted:.2f}, "
        f"bonus={bonus:.2f}, penalty={penalty:.2f}, value={value:.2f}"
    )
    return _clamp(value)


def pronunciation_score(confidence: float, recognized_text: str, expected_text: str = "") -> TraitScore:
    """
    发音档位 (0-5)

    Args:
        confidence: 识别平均置信度
        recognized_text: 识别文本
        expected_text: 参考文本（可为空）

    Returns:
        TraitScore
    """
    if not normalize(recognized_text):
        band = 0
    else:
        value = pronunciation_value(confidence, recognized_text, expected_text)
        thresholds = config.get("pronunciation.band_thresholds", PRONUNCIATION_BAND_THRESHOLDS)
        band = max(0, band_from_thresholds(value, thresholds, TRAIT_MAX_BAND))

    logger.info(f"发音评分: {band}/{TRAIT_MAX_BAND} ({PRONUNCIATION_DESCRIPTORS[band]})")
    return TraitScore(
        name="pronunciation",
        raw=band,
        max=TRAIT_MAX_BAND,
        band=band,
        descriptor=PRONUNCIATION_DESCRIPTORS[band],
    )


def fluency_metrics(utterance: Utterance, record_time_sec: float | None = None) -> FluencyMetrics:
    """
    计算流利度诊断指标

    - wpm = 词数 / 时长 × 60
    - 事件间隔 > 3000ms 记为长停顿，(1500, 3000] 记为迟疑
    - 平均每个识别事件的词数
    """
    words = len(normalize(utterance.text))
    elapsed = utterance.duration_sec
    wpm = words / elapsed * 60 if elapsed > 0 else 0.0

    long_pause_ms = config.get("fluency.long_pause_ms", LONG_PAUSE_MS)
    hesitation_ms = config.get("fluency.hesitation_ms", HESITATION_MS)

    times = sorted(e.time_ms for e in utterance.events)
    long_pauses = 0
    hesitations = 0
    for prev, curr in zip(times, times[1:]):
        gap = curr - prev
        if gap > long_pause_ms:
            long_pauses += 1
        elif gap > hesitation_ms:
            hesitations += 1

    event_count = len(utterance.events) or 1
    time_used = 0.0
    if record_time_sec and record_time_sec > 0:
        time_used = elapsed / record_time_sec

    return FluencyMetrics(
        word_count=words,
        wpm=wpm,
        long_pauses=long_pauses,
        hesitations=hesitations,
        avg_words_per_event=words / event_count,
        time_used_ratio=time_used,
    )


def fluency_band(metrics: FluencyMetrics) -> int:
    """按决策表计算流利度档位（未做时长降档）"""
    wpm = metrics.wpm
    pauses = metrics.long_pauses
    hesitations = metrics.hesitations
    chunk = metrics.avg_words_per_event

    if 110 <= wpm <= 170 and pauses == 0 and hesitations == 0 and chunk >= 8:
        return 5
    if 100 <= wpm <= 180 and pauses == 0 and hesitations <= 1 and chunk >= 5:
        return 4
    if 80 <= wpm <= 200 and pauses <= 1 and hesitations <= 3 and chunk >= 3:
        return 3
    if wpm >= 50 and chunk >= 2 and pauses <= 2:
        return 2
    if metrics.word_count >= 3:
        return 1
    return 0


def demote_for_time_used(band: int, time_used_ratio: float | None) -> int:
    """
    录音时间利用不足时降档

    少于 30% 降一档（最低到 2），少于 15% 再降一档（最低到 1）；降档不会抬高档位。
    """
    if time_used_ratio is None:
        return band
    if time_used_ratio < config.get("fluency.short_response_ratio", SHORT_RESPONSE_RATIO):
        band = max(min(band, 2), band - 1)
    if time_used_ratio < config.get("fluency.very_short_response_ratio", VERY_SHORT_RESPONSE_RATIO):
        band = max(min(band, 1), band - 1)
    return band


def fluency_score(utterance: Utterance, record_time_sec: float | None = None) -> tuple[TraitScore, FluencyMetrics]:
    """
    流利度档位 (0-5)

    Args:
        utterance: 识别结果（文本、事件、时长）
        record_time_sec: 该题允许的录音时长，用于时间利用率降档

    Returns:
        (TraitScore, FluencyMetrics)
    """
    metrics = fluency_metrics(utterance, record_time_sec)
    if metrics.word_count == 0:
        band = 0
    else:
        band = fluency_band(metrics)
        if record_time_sec and record_time_sec > 0:
            band = demote_for_time_used(band, metrics.time_used_ratio)

    logger.info(
        f"流利度评分: {band}/{TRAIT_MAX_BAND}, WPM={metrics.wpm:.1f}, "
        f"长停顿={metrics.long_pauses}, 迟疑={metrics.hesitations}, "
        f"平均每段词数={metrics.avg_words_per_event:.1f}"
    )
    score = TraitScore(
        name="fluency",
        raw=band,
        max=TRAIT_MAX_BAND,
        band=band,
        descriptor=FLUENCY_DESCRIPTORS[band],
    )
    return score, metrics


def vocabulary_from_content(content: ContentScore) -> TraitScore:
    """ASQ 的词汇分直接沿用内容判分结果 (0/1)"""
    raw = 1 if content.raw >= 1 else 0
    return TraitScore(
        name="vocabulary",
        raw=raw,
        max=1,
        band=raw,
        descriptor="Correct" if raw else "Incorrect",
    )
