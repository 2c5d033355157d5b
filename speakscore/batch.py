"""
口语评测引擎 - 批量处理模块

支持从 manifest CSV（识别文本 + 事件）和题库 YAML 批量评测。
"""
import csv
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator

import yaml

from speakscore.config import config
from speakscore.models import (
    EvaluationRequest,
    EvaluationResult,
    ExpectedResponse,
    Utterance,
    WordEvent,
    as_finite,
)
from speakscore.pipeline.evaluate import evaluate_response

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = {"task_id", "student_id", "transcript"}


@dataclass
class TaskConfig:
    """
    题库中的一道题
    """
    task_id: str
    expected: ExpectedResponse

    # 可选覆盖录音时长
    record_time_sec: float | None = None


def load_manifest(manifest_path: Path) -> Iterator[dict]:
    """
    加载 manifest CSV 文件

    CSV 格式要求：
    - 必须包含列：task_id, student_id, transcript
    - 可选列：confidence, elapsed_sec, events（"ms:词数 ms:词数"）

    Args:
        manifest_path: CSV 文件路径

    Yields:
        每行数据的字典
    """
    if not manifest_path.exists():
        raise FileNotFoundError(f"Manifest 文件不存在: {manifest_path}")

    with open(manifest_path, encoding="utf-8") as f:
        reader = csv.DictReader(f)

        # 验证必须的列
        if not REQUIRED_COLUMNS.issubset(set(reader.fieldnames or [])):
            missing = REQUIRED_COLUMNS - set(reader.fieldnames or [])
            raise ValueError(f"Manifest 缺少必要的列: {sorted(missing)}")

        for row in reader:
            yield row


def load_tasks(tasks_path: Path) -> dict[str, TaskConfig]:
    """
    加载题库 YAML 文件

    YAML 格式：
    ```yaml
    tasks:
      ra_001:
        task_type: read-aloud
        reference_text: "The quick brown fox"
      asq_001:
        task_type: answer-short-question
        accepted_answers: ["thermometer"]
        record_time_sec: 10
    ```

    Args:
        tasks_path: YAML 文件路径

    Returns:
        task_id -> TaskConfig 的映射
    """
    if not tasks_path.exists():
        raise FileNotFoundError(f"题库文件不存在: {tasks_path}")

    with open(tasks_path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    tasks: dict[str, TaskConfig] = {}

    for task_id, task_data in (data.get("tasks") or {}).items():
        try:
            expected = ExpectedResponse.from_dict(task_data)
        except (KeyError, ValueError) as e:
            raise ValueError(f"题目 {task_id} 配置无效: {e}") from e

        record_time = task_data.get("record_time_sec")
        tasks[str(task_id)] = TaskConfig(
            task_id=str(task_id),
            expected=expected,
            record_time_sec=as_finite(record_time) if record_time is not None else None,
        )

    logger.info(f"已加载 {len(tasks)} 道题")
    return tasks


def parse_events(value: str | None) -> list[WordEvent]:
    """
    解析事件列

    "1200:5 2300:4" -> [WordEvent(1200, 5), WordEvent(2300, 4)]；格式不对的片段跳过。
    """
    events: list[WordEvent] = []
    for chunk in (value or "").split():
        time_ms, sep, count = chunk.partition(":")
        if not sep:
            logger.warning(f"忽略无法解析的事件: {chunk}")
            continue
        events.append(WordEvent(time_ms=as_finite(time_ms), word_count=int(as_finite(count))))
    return events


def build_requests(manifest_path: Path, tasks: dict[str, TaskConfig]) -> list[EvaluationRequest]:
    """
    从 manifest 构建评测请求

    Args:
        manifest_path: CSV 文件路径
        tasks: 题库映射

    Returns:
        EvaluationRequest 列表（manifest 顺序）
    """
    requests: list[EvaluationRequest] = []

    for row in load_manifest(manifest_path):
        task_id = row["task_id"]
        task = tasks.get(task_id)
        if task is None:
            logger.warning(f"未找到题目 {task_id}，跳过")
            continue

        confidence = (row.get("confidence") or "").strip()
        utterance = Utterance(
            text=row.get("transcript") or "",
            events=parse_events(row.get("events")),
            confidences=[as_finite(confidence)] if confidence else [],
            elapsed_sec=as_finite(row.get("elapsed_sec") or 0.0),
        )
        requests.append(EvaluationRequest(
            expected=task.expected,
            utterance=utterance,
            record_time_sec=task.record_time_sec,
            task_id=task_id,
            student_id=row["student_id"],
        ))

    return requests


def run_batch(
    requests: list[EvaluationRequest],
    max_workers: int | None = None,
    progress_callback: Callable[[int, int, EvaluationRequest], None] | None = None,
) -> list[EvaluationResult]:
    """
    批量评测

    Args:
        requests: 评测请求
        max_workers: 最大并发数（默认取 batch.default_jobs）
        progress_callback: 进度回调函数 (completed, total, request)

    Returns:
        与 requests 顺序一致的结果列表
    """
    total = len(requests)
    workers = max_workers or config.get("batch.default_jobs", 4)
    workers = max(1, min(workers, config.get("batch.max_jobs", 16)))
    results: list[EvaluationResult | None] = [None] * total

    logger.info(f"开始批量评测 {total} 条作答，并发数: {workers}")

    with ThreadPoolExecutor(max_workers=workers) as executor:
        future_to_index = {
            executor.submit(evaluate_response, request): i
            for i, request in enumerate(requests)
        }

        for completed, future in enumerate(as_completed(future_to_index), 1):
            index = future_to_index[future]
            results[index] = future.result()
            if progress_callback:
                progress_callback(completed, total, requests[index])

    logger.info(f"批量评测完成: {total} 条")
    return [r for r in results if r is not None]
