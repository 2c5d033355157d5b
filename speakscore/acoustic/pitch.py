"""
口语评测引擎 - 基频检测模块

基于自相关的单帧基频 (F0) 估计。纯函数，无共享状态，可在任意线程调用。
"""
import numpy as np

from speakscore.config import config

SILENCE_RMS = 0.01
TRIM_THRESHOLD = 0.2
MIN_CORRELATION_RATIO = 0.3
MIN_VOICE_HZ = 75.0
MAX_VOICE_HZ = 500.0
DB_FLOOR_RMS = 1e-5


def _as_frame(frame) -> np.ndarray:
    samples = np.asarray(frame, dtype=np.float64).ravel()
    # 非有限值按静音处理
    return np.nan_to_num(samples, nan=0.0, posinf=0.0, neginf=0.0)


def frame_rms(frame) -> float:
    """帧的均方根幅度"""
    samples = _as_frame(frame)
    if samples.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(samples ** 2)))


def rms_to_db(rms: float) -> float:
    """RMS -> dB（下限 1e-5，即 -100dB）"""
    return float(20 * np.log10(max(rms, DB_FLOOR_RMS)))


def detect_pitch(frame, sample_rate: float) -> float:
    """
    自相关基频检测

    1. RMS 低于静音阈值直接返回 0
    2. 去掉首尾幅度低于阈值的采样
    3. 计算 0 到半帧长的归一化自相关
    4. 越过零延迟主峰后的下降段，寻找其后的最大值
    5. 无内部极大值或峰值 < 0.3 × 零延迟值时拒绝
    6. 抛物线插值细化峰位置
    7. 频率超出 75-500Hz 人声范围时返回 0

    Args:
        frame: 时域采样（归一化到 [-1, 1]）
        sample_rate: 采样率

    Returns:
        基频 (Hz)，保留一位小数；未检测到时返回 0
    """
    samples = _as_frame(frame)
    if samples.size < 3 or not sample_rate or sample_rate <= 0:
        return 0.0

    if frame_rms(samples) < config.get("pitch.silence_rms", SILENCE_RMS):
        return 0.0

    # 去掉首尾弱信号
    threshold = config.get("pitch.trim_threshold", TRIM_THRESHOLD)
    size = samples.size
    half = size // 2
    loud_head = np.nonzero(np.abs(samples[:half]) > threshold)[0]
    loud_tail = np.nonzero(np.abs(samples[half:]) > threshold)[0]
    start = int(loud_head[0]) if loud_head.size else 0
    end = half + int(loud_tail[-1]) if loud_tail.size else size - 1
    trimmed = samples[start:end + 1]

    n = trimmed.size
    max_lag = n // 2
    if max_lag < 3:
        return 0.0

    full = np.correlate(trimmed, trimmed, mode="full")
    correlations = full[n - 1:n - 1 + max_lag + 1]
    zero_lag = correlations[0]
    if zero_lag <= 0:
        return 0.0
    correlations = correlations / zero_lag

    # 越过零延迟主峰
    d = 0
    last = correlations.size - 1
    while d < last and correlations[d] > correlations[d + 1]:
        d += 1

    max_pos = d + int(np.argmax(correlations[d:]))
    max_val = correlations[max_pos]

    min_ratio = config.get("pitch.min_correlation_ratio", MIN_CORRELATION_RATIO)
    if max_pos < 1 or max_pos >= last or max_val < min_ratio * correlations[0]:
        return 0.0

    # 抛物线插值
    y1, y2, y3 = correlations[max_pos - 1], correlations[max_pos], correlations[max_pos + 1]
    denominator = 2 * (2 * y2 - y1 - y3)
    shift = (y3 - y1) / denominator if denominator != 0 else 0.0
    refined = max_pos + shift
    if refined <= 0:
        return 0.0

    frequency = sample_rate / refined
    min_hz = config.get("pitch.min_hz", MIN_VOICE_HZ)
    max_hz = config.get("pitch.max_hz", MAX_VOICE_HZ)
    if not np.isfinite(frequency) or frequency < min_hz or frequency > max_hz:
        return 0.0

    return round(float(frequency), 1)
