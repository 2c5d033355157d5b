"""
口语评测引擎 - 音频加载模块

把任意格式音频解码为单声道浮点采样，并按帧切分供基频检测使用。
"""
import logging
from pathlib import Path
from typing import Iterator

import numpy as np
from pydub import AudioSegment

from speakscore.config import config

logger = logging.getLogger(__name__)

TARGET_CHANNELS = 1


def load_audio(input_path: Path, target_rate: int | None = None) -> tuple[np.ndarray, int]:
    """
    加载音频文件

    转为单声道，可选重采样，采样值归一化到 [-1, 1]。

    Args:
        input_path: 音频文件路径（支持 WAV, MP3, M4A 等）
        target_rate: 目标采样率；为 None 时使用 audio.sample_rate 配置

    Returns:
        (float32 采样数组, 采样率)

    Raises:
        FileNotFoundError: 文件不存在
        RuntimeError: 解码失败
    """
    input_path = Path(input_path)
    if not input_path.exists():
        raise FileNotFoundError(f"音频文件不存在: {input_path}")

    target_rate = target_rate or config.get("audio.sample_rate", 16000)
    logger.info(f"加载音频: {input_path} (目标采样率 {target_rate}Hz)")

    try:
        audio = AudioSegment.from_file(str(input_path))
        audio = audio.set_channels(TARGET_CHANNELS)
        audio = audio.set_frame_rate(target_rate)

        samples = np.array(audio.get_array_of_samples(), dtype=np.float32)
        max_val = 2 ** (audio.sample_width * 8 - 1)
        samples = samples / max_val
    except Exception as e:
        logger.error(f"音频加载失败: {e}")
        raise RuntimeError(f"音频加载失败: {e}") from e

    logger.info(f"音频加载完成: 时长 {len(audio) / 1000:.2f}s, {samples.size} 个采样")
    return samples, audio.frame_rate


def iter_frames(samples: np.ndarray, frame_size: int, hop: int | None = None) -> Iterator[tuple[int, np.ndarray]]:
    """
    按固定帧长切帧（丢弃不足一帧的尾部）

    Yields:
        (起始采样下标, 帧)
    """
    hop = hop or frame_size
    if frame_size <= 0 or hop <= 0:
        raise ValueError("frame_size 和 hop 必须为正数")
    for offset in range(0, len(samples) - frame_size + 1, hop):
        yield offset, samples[offset:offset + frame_size]
