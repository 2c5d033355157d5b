"""
口语评测引擎 - 评测流程模块

把一次作答依次送入内容、发音、流利度评分，汇总为综合分并生成反馈。
"""
import logging
import time
from typing import Callable, Optional

from speakscore.advice.accent import analyze_accent
from speakscore.advice.generator import generate_feedback
from speakscore.models import (
    TASK_SPECS,
    EvaluationRequest,
    EvaluationResult,
    TaskType,
    ToneProfile,
    TraitScores,
)
from speakscore.pipeline.aggregate import band_label, calculate_overall
from speakscore.pipeline.content import score_content
from speakscore.pipeline.traits import fluency_score, pronunciation_score, vocabulary_from_content

logger = logging.getLogger(__name__)

# 只有这两类题型有逐词参考文本
REFERENCE_TASKS = (TaskType.READ_ALOUD, TaskType.REPEAT_SENTENCE)


def record_time_for(request: EvaluationRequest) -> float:
    """录音时长：请求中指定的优先，否则取题型默认值"""
    if request.record_time_sec is not None and request.record_time_sec > 0:
        return request.record_time_sec
    return float(TASK_SPECS[request.expected.task_type].record_time_sec)


def evaluate_response(
    request: EvaluationRequest,
    tone: Optional[ToneProfile] = None,
    progress_callback: Optional[Callable[[str], None]] = None,
) -> EvaluationResult:
    """
    运行完整的评测流程

    1. 内容分（ASQ 为词汇分）
    2. 发音分（仅 RA/RS 使用参考文本）
    3. 流利度分
    4. 综合分与等级
    5. 反馈建议
    6. 口音分析（仅 RA/RS）

    Args:
        request: 评测请求
        tone: 可选的语调画像，原样附加到结果
        progress_callback: 进度回调

    Returns:
        EvaluationResult
    """
    start_time = time.time()
    expected = request.expected
    utterance = request.utterance
    task_type = expected.task_type

    def update_progress(desc: str):
        if progress_callback:
            progress_callback(desc)
        logger.info(desc)

    result = EvaluationResult(
        task_type=task_type,
        task_id=request.task_id,
        student_id=request.student_id,
        tone=tone,
    )
    scores = TraitScores()

    # 1. Content
    update_progress(f"计算内容分 [{task_type.value}]...")
    content = score_content(task_type, utterance.text, expected)

    if task_type == TaskType.ANSWER_SHORT_QUESTION:
        scores.vocabulary = vocabulary_from_content(content)
    else:
        scores.content = content

        # 2. Pronunciation
        update_progress("计算发音分...")
        reference = expected.reference_text if task_type in REFERENCE_TASKS else ""
        scores.pronunciation = pronunciation_score(utterance.confidence, utterance.text, reference)

        # 3. Fluency
        update_progress("计算流利度分...")
        scores.fluency, result.fluency_metrics = fluency_score(utterance, record_time_for(request))

    result.scores = scores

    # 4. Overall
    result.overall_score = calculate_overall(scores, task_type)
    result.band = band_label(result.overall_score)

    # 5. Feedback
    update_progress("生成建议...")
    result.feedback = generate_feedback(result)

    # 6. Accent
    if task_type in REFERENCE_TASKS and expected.reference_text.strip():
        update_progress("分析口音模式...")
        result.accent = analyze_accent(expected.reference_text, utterance.text)

    logger.info(
        f"评测完成 [{task_type.value}]: 综合分={result.overall_score} ({result.band.label}), "
        f"耗时 {(time.time() - start_time) * 1000:.0f}ms"
    )
    return result
