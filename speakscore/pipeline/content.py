"""
口语评测引擎 - 内容评分模块

按题型把 (期望作答, 识别文本, 关键词) 转换为内容/得体性 raw 分。
"""
import logging
from typing import Sequence

from speakscore.config import config
from speakscore.models import ContentScore, ExpectedResponse, SpeakerTurn, TaskType
from speakscore.pipeline.aggregate import (
    REPEAT_SENTENCE_MAX,
    SIX_POINT_MAX,
    band_from_thresholds,
)
from speakscore.pipeline.align import edit_distance, lcs_length, normalize

logger = logging.getLogger(__name__)

# 六分制题型的综合分切点 -> 6/5/4/3/2
COMPOSITE_BAND_THRESHOLDS = (0.80, 0.65, 0.50, 0.35, 0.20)
# 低于最低切点时，说满 5 个词给 1 分
MIN_WORDS_FOR_BAND_ONE = 5

# Repeat Sentence：LCS 比例切点 -> 3/2/1
REPEAT_SENTENCE_THRESHOLDS = (0.90, 0.50, 0.15)

# (最少词数, 长度因子)，从高到低
LENGTH_FACTOR_STEPS = ((60, 1.0), (40, 0.85), (25, 0.65), (10, 0.4))
LENGTH_FACTOR_FLOOR = 0.2

DATA_POINT_CAP = 4
DISCOURSE_DIVISOR = 5
CONNECTIVE_DIVISOR = 4
SYNTHESIS_DIVISOR = 3
POLITENESS_DIVISOR = 3
SPEAKER_MIN_WORDS = 3

ASQ_MAX_DISTANCE = 2

DESCRIBE_IMAGE_WEIGHTS = {"keywords": 0.35, "data_points": 0.25, "length": 0.20, "discourse": 0.20}
RETELL_LECTURE_WEIGHTS = {"keywords": 0.35, "overlap": 0.25, "length": 0.20, "connectives": 0.20}
GROUP_DISCUSSION_WEIGHTS = {"keywords": 0.30, "speakers": 0.30, "length": 0.20, "synthesis": 0.20}
SITUATION_WEIGHTS = {"keywords": 0.40, "length": 0.30, "politeness": 0.30}

STOPWORDS = frozenset({
    "a", "an", "the", "and", "or", "but", "so", "if", "then", "than", "of", "in", "on", "at",
    "to", "for", "with", "by", "from", "as", "into", "about", "over", "after", "before",
    "is", "are", "was", "were", "be", "been", "being", "am", "has", "have", "had", "do",
    "does", "did", "will", "would", "can", "could", "should", "may", "might", "must",
    "it", "its", "it's", "this", "that", "these", "those", "there", "their", "they", "them",
    "he", "she", "his", "her", "we", "our", "you", "your", "i", "me", "my", "not", "no",
    "also", "very", "just", "what", "which", "who", "when", "where", "how", "why", "all",
    "some", "any", "more", "most", "such", "only", "other", "up", "out", "one", "like",
})

DISCOURSE_MARKERS = (
    "overall", "in general", "the chart shows", "the graph shows", "the image shows",
    "the picture shows", "the diagram shows", "according to", "compared to", "compared with",
    "in contrast", "on the other hand", "whereas", "while", "however", "followed by",
    "the highest", "the lowest", "the largest", "the smallest", "in conclusion",
    "to sum up", "to conclude", "in summary", "first", "firstly", "secondly", "finally",
)

CONNECTIVES = (
    "firstly", "first", "secondly", "second", "then", "next", "moreover", "furthermore",
    "in addition", "additionally", "however", "therefore", "as a result", "because",
    "for example", "for instance", "on the other hand", "finally", "in conclusion",
    "the lecture", "the speaker", "the lecturer", "talked about", "discussed", "mentioned",
)

SYNTHESIS_MARKERS = (
    "the discussion", "the speakers", "the group", "one speaker", "another speaker",
    "the first speaker", "the second speaker", "the third speaker", "agreed", "disagreed",
    "argued", "pointed out", "suggested", "both", "all of them", "in contrast", "however",
    "while", "whereas", "overall", "in conclusion", "to sum up", "in summary",
)

POLITENESS_MARKERS = (
    "please", "thank you", "thanks", "sorry", "excuse me", "would you", "could you",
    "would it be possible", "i was wondering", "appreciate", "apologize", "apologise",
    "kindly", "may i", "if you don't mind", "i'd like", "i would like", "do you mind",
    "i understand", "i'm afraid",
)

NUMBER_WORDS = frozenset({
    "zero", "one", "two", "three", "four", "five", "six", "seven", "eight", "nine", "ten",
    "eleven", "twelve", "fifteen", "twenty", "thirty", "forty", "fifty", "sixty", "seventy",
    "eighty", "ninety", "hundred", "thousand", "million", "billion", "percent", "half",
    "quarter",
})


def length_factor(word_count: int) -> float:
    """按识别词数计算长度因子（阶梯函数）"""
    steps = config.get("content.length_factor_steps", LENGTH_FACTOR_STEPS)
    for min_words, factor in sorted(steps, key=lambda s: s[0], reverse=True):
        if word_count >= min_words:
            return float(factor)
    return config.get("content.length_factor_floor", LENGTH_FACTOR_FLOOR)


def keyword_coverage(keywords: Sequence[str], recognized_text: str) -> float:
    """关键词覆盖率（不区分大小写的子串匹配）"""
    wanted = [k.lower().strip() for k in keywords if k and k.strip()]
    if not wanted:
        return 0.0
    text = (recognized_text or "").lower()
    matched = sum(1 for kw in wanted if kw in text)
    return matched / len(wanted)


def count_phrases(phrases: Sequence[str], tokens: Sequence[str]) -> int:
    """统计出现过的短语个数（按整词边界匹配，去重）"""
    padded = f" {' '.join(tokens)} "
    return sum(1 for phrase in set(phrases) if f" {phrase} " in padded)


def marker_factor(phrases: Sequence[str], tokens: Sequence[str], divisor: int) -> float:
    """min(1, 命中短语数 / divisor)"""
    if divisor <= 0:
        return 0.0
    return min(1.0, count_phrases(phrases, tokens) / divisor)


def content_words(tokens: Sequence[str]) -> set[str]:
    """去停用词后的非平凡词集合"""
    return {t for t in tokens if t not in STOPWORDS and len(t) >= 3}


def composite_band(composite: float, word_count: int) -> int:
    """六分制综合分 -> 档位"""
    thresholds = config.get("content.band_thresholds", COMPOSITE_BAND_THRESHOLDS)
    band = band_from_thresholds(composite, thresholds, SIX_POINT_MAX)
    if band >= 2:
        return band
    return 1 if word_count >= MIN_WORDS_FOR_BAND_ONE else 0


def _zero(max_score: int, label: str = "Content", errors: int = 0) -> ContentScore:
    return ContentScore(name="content", raw=0, max=max_score, band=0, errors=errors, label=label)


def score_read_aloud(recognized_text: str, reference_text: str) -> ContentScore:
    """
    Read Aloud 内容分

    max = 期望词数；errors = 漏读 + 多读；raw = max(0, max - errors)
    """
    expected = normalize(reference_text)
    recognized = normalize(recognized_text)
    max_score = len(expected)
    if not expected:
        logger.warning("Read Aloud 缺少参考文本，内容分记为 0")
        return _zero(0)

    lcs = lcs_length(expected, recognized)
    errors = (len(expected) - lcs) + (len(recognized) - lcs)
    raw = max(0, max_score - errors)
    return ContentScore(
        name="content",
        raw=raw,
        max=max_score,
        band=raw,
        errors=errors,
        composite=lcs / len(expected),
    )


def score_repeat_sentence(recognized_text: str, reference_text: str) -> ContentScore:
    """Repeat Sentence 内容分（0-3，按 LCS 比例分档）"""
    expected = normalize(reference_text)
    recognized = normalize(recognized_text)
    if not expected or not recognized:
        return _zero(REPEAT_SENTENCE_MAX, errors=len(expected))

    lcs = lcs_length(expected, recognized)
    ratio = lcs / len(expected)
    thresholds = config.get("content.repeat_sentence_thresholds", REPEAT_SENTENCE_THRESHOLDS)
    band = band_from_thresholds(ratio, thresholds, REPEAT_SENTENCE_MAX)
    errors = (len(expected) - lcs) + (len(recognized) - lcs)
    return ContentScore(
        name="content",
        raw=band,
        max=REPEAT_SENTENCE_MAX,
        band=band,
        errors=errors,
        composite=ratio,
    )


def data_point_coverage(data_points: Sequence[str], recognized_text: str, tokens: Sequence[str]) -> float:
    """
    图表数据点覆盖率

    提供了 data_points 时按子串匹配统计；否则统计回答中的数字词。
    两种情况都以 DATA_POINT_CAP 个为满。
    """
    cap = config.get("content.data_point_cap", DATA_POINT_CAP)
    points = [p.lower().strip() for p in data_points if p and p.strip()]
    if points:
        text = (recognized_text or "").lower()
        mentioned = sum(1 for p in points if p in text)
        target = min(len(points), cap)
    else:
        mentioned = sum(1 for t in tokens if any(ch.isdigit() for ch in t) or t in NUMBER_WORDS)
        target = cap
    if target <= 0:
        return 0.0
    return min(1.0, mentioned / target)


def score_describe_image(recognized_text: str, expected: ExpectedResponse) -> ContentScore:
    """Describe Image 内容分（0-6）"""
    tokens = normalize(recognized_text)
    if not expected.keywords:
        logger.warning("Describe Image 缺少关键词，内容分记为 0")
        return _zero(SIX_POINT_MAX)

    weights = config.get("content.describe_image_weights", DESCRIBE_IMAGE_WEIGHTS)
    composite = (
        weights["keywords"] * keyword_coverage(expected.keywords, recognized_text)
        + weights["data_points"] * data_point_coverage(expected.data_points, recognized_text, tokens)
        + weights["length"] * length_factor(len(tokens))
        + weights["discourse"] * marker_factor(
            DISCOURSE_MARKERS, tokens, config.get("content.discourse_divisor", DISCOURSE_DIVISOR)
        )
    )
    band = composite_band(composite, len(tokens))
    return ContentScore(name="content", raw=band, max=SIX_POINT_MAX, band=band, composite=composite)


def overlap_ratio(reference_text: str, tokens: Sequence[str]) -> float:
    """参考文本实词中被回答覆盖的比例（去停用词）"""
    reference_words = content_words(normalize(reference_text))
    if not reference_words:
        return 0.0
    return len(reference_words & set(tokens)) / len(reference_words)


def score_retell_lecture(recognized_text: str, expected: ExpectedResponse) -> ContentScore:
    """Re-tell Lecture 内容分（0-6）"""
    tokens = normalize(recognized_text)
    if not expected.keywords:
        logger.warning("Re-tell Lecture 缺少关键词，内容分记为 0")
        return _zero(SIX_POINT_MAX)

    weights = config.get("content.retell_lecture_weights", RETELL_LECTURE_WEIGHTS)
    composite = (
        weights["keywords"] * keyword_coverage(expected.keywords, recognized_text)
        + weights["overlap"] * overlap_ratio(expected.reference_text, tokens)
        + weights["length"] * length_factor(len(tokens))
        + weights["connectives"] * marker_factor(
            CONNECTIVES, tokens, config.get("content.connective_divisor", CONNECTIVE_DIVISOR)
        )
    )
    band = composite_band(composite, len(tokens))
    return ContentScore(name="content", raw=band, max=SIX_POINT_MAX, band=band, composite=composite)


def speaker_coverage(speakers: Sequence[SpeakerTurn], tokens: Sequence[str]) -> float:
    """
    发言人覆盖率

    某位发言人至少有 3 个非平凡词出现在回答中即视为覆盖。
    """
    words_by_speaker: dict[str, set[str]] = {}
    for turn in speakers:
        words_by_speaker.setdefault(turn.speaker, set()).update(content_words(normalize(turn.text)))

    if not words_by_speaker:
        return 0.0

    spoken = set(tokens)
    covered = 0
    for words in words_by_speaker.values():
        if len(words & spoken) >= SPEAKER_MIN_WORDS:
            covered += 1
    return covered / len(words_by_speaker)


def score_group_discussion(recognized_text: str, expected: ExpectedResponse) -> ContentScore:
    """Summarize Group Discussion 内容分（0-6）"""
    tokens = normalize(recognized_text)
    if not expected.keywords and not expected.speakers:
        logger.warning("Group Discussion 缺少关键词和发言内容，内容分记为 0")
        return _zero(SIX_POINT_MAX)

    weights = config.get("content.group_discussion_weights", GROUP_DISCUSSION_WEIGHTS)
    composite = (
        weights["keywords"] * keyword_coverage(expected.keywords, recognized_text)
        + weights["speakers"] * speaker_coverage(expected.speakers, tokens)
        + weights["length"] * length_factor(len(tokens))
        + weights["synthesis"] * marker_factor(
            SYNTHESIS_MARKERS, tokens, config.get("content.synthesis_divisor", SYNTHESIS_DIVISOR)
        )
    )
    band = composite_band(composite, len(tokens))
    return ContentScore(name="content", raw=band, max=SIX_POINT_MAX, band=band, composite=composite)


def score_situation(recognized_text: str, expected: ExpectedResponse) -> ContentScore:
    """Respond to a Situation 得体性分（0-6）"""
    tokens = normalize(recognized_text)
    if not expected.keywords:
        logger.warning("Respond to Situation 缺少关键词，得体性分记为 0")
        return _zero(SIX_POINT_MAX, label="Appropriacy")

    weights = config.get("content.situation_weights", SITUATION_WEIGHTS)
    composite = (
        weights["keywords"] * keyword_coverage(expected.keywords, recognized_text)
        + weights["length"] * length_factor(len(tokens))
        + weights["politeness"] * marker_factor(
            POLITENESS_MARKERS, tokens, config.get("content.politeness_divisor", POLITENESS_DIVISOR)
        )
    )
    band = composite_band(composite, len(tokens))
    return ContentScore(
        name="content",
        raw=band,
        max=SIX_POINT_MAX,
        band=band,
        composite=composite,
        label="Appropriacy",
    )


def vocabulary_score(recognized_text: str, accepted_answers: Sequence[str]) -> int:
    """
    Answer Short Question 判分（0/1）

    归一化文本包含任一标准答案，或任一识别词与标准答案编辑距离 <= 2，记 1 分。
    """
    tokens = normalize(recognized_text)
    if not tokens:
        return 0

    answers = [" ".join(normalize(a)) for a in accepted_answers]
    answers = [a for a in answers if a]
    if not answers:
        return 0

    text = " ".join(tokens)
    if any(answer in text for answer in answers):
        return 1

    max_distance = config.get("content.asq_max_distance", ASQ_MAX_DISTANCE)
    for answer in answers:
        for word in tokens:
            if edit_distance(word, answer) <= max_distance:
                return 1
    return 0


def score_content(task_type: TaskType, recognized_text: str, expected: ExpectedResponse) -> ContentScore:
    """
    按题型计算内容分

    Args:
        task_type: 题型
        recognized_text: 识别文本
        expected: 期望作答

    Returns:
        ContentScore（raw/max）
    """
    if task_type == TaskType.ANSWER_SHORT_QUESTION:
        raw = vocabulary_score(recognized_text, expected.accepted_answers)
        return ContentScore(name="vocabulary", raw=raw, max=1, band=raw, composite=float(raw), label="Vocabulary")

    if not normalize(recognized_text):
        logger.warning("识别文本为空，内容分记为 0")
        if task_type == TaskType.READ_ALOUD:
            max_score = len(normalize(expected.reference_text))
            return _zero(max_score, errors=max_score)
        if task_type == TaskType.REPEAT_SENTENCE:
            return _zero(REPEAT_SENTENCE_MAX, errors=len(normalize(expected.reference_text)))
        label = "Appropriacy" if task_type == TaskType.RESPOND_TO_SITUATION else "Content"
        return _zero(SIX_POINT_MAX, label=label)

    if task_type == TaskType.READ_ALOUD:
        result = score_read_aloud(recognized_text, expected.reference_text)
    elif task_type == TaskType.REPEAT_SENTENCE:
        result = score_repeat_sentence(recognized_text, expected.reference_text)
    elif task_type == TaskType.DESCRIBE_IMAGE:
        result = score_describe_image(recognized_text, expected)
    elif task_type == TaskType.RETELL_LECTURE:
        result = score_retell_lecture(recognized_text, expected)
    elif task_type == TaskType.SUMMARIZE_GROUP_DISCUSSION:
        result = score_group_discussion(recognized_text, expected)
    else:
        result = score_situation(recognized_text, expected)

    logger.info(f"内容评分 [{task_type.value}]: raw={result.raw}/{result.max}, errors={result.errors}")
    return result
