"""
口语评测引擎 - 语调分析模块

在一次录音过程中累积基频与音量采样，结束时汇总为语调画像
（平均音高、起伏度、语调走势、音量稳定性及定性建议）。
"""
import logging
import math
import time
from typing import Callable, Sequence

import numpy as np

from speakscore.acoustic.pitch import detect_pitch, frame_rms, rms_to_db
from speakscore.acoustic.preprocess import iter_frames
from speakscore.config import config
from speakscore.models import (
    MetricAnalysis,
    PitchSample,
    Rating,
    ToneAnalysis,
    ToneProfile,
    VolumeSample,
)

logger = logging.getLogger(__name__)

MIN_VOICED_SAMPLES = 3
MIN_PATTERN_SAMPLES = 4
VOLUME_FLOOR_DB = -60.0
DEFAULT_AVG_VOLUME_DB = -40.0

RISING_RATIO = 1.05
FALLING_RATIO = 0.95
VARIED_RATIO = 1.1

VARIED_PATTERNS = ("varied", "falling-varied", "rising-varied")
DIRECTIONAL_PATTERNS = ("rising", "falling")

PATTERN_NAMES = {
    "flat": "Flat (monotone)",
    "rising": "Rising",
    "falling": "Falling (natural)",
    "varied": "Varied (natural)",
    "rising-varied": "Rising with variation (engaging)",
    "falling-varied": "Falling with variation (natural)",
    "insufficient": "Not enough data",
}


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _std(values: Sequence[float], mean: float) -> float:
    if not values:
        return 0.0
    return math.sqrt(sum((v - mean) ** 2 for v in values) / len(values))


def classify_intonation(pitches: Sequence[float]) -> tuple[str, list[float]]:
    """
    四段语调走势分类

    按四等分计算各段平均音高，比较首尾段判断升/降，
    各段最大/最小比值 > 1.1 视为有起伏。

    Returns:
        (pattern, 各段平均值)
    """
    if len(pitches) < MIN_PATTERN_SAMPLES:
        return "insufficient", []

    seg_len = len(pitches) // 4
    segments = []
    for i in range(4):
        start = i * seg_len
        end = len(pitches) if i == 3 else (i + 1) * seg_len
        segments.append(_mean(pitches[start:end]))

    rising = segments[3] > segments[0] * RISING_RATIO
    falling = segments[3] < segments[0] * FALLING_RATIO
    lowest = min(segments)
    varied = lowest > 0 and max(segments) / lowest > VARIED_RATIO

    if rising and varied:
        pattern = "rising-varied"
    elif falling and varied:
        pattern = "falling-varied"
    elif rising:
        pattern = "rising"
    elif falling:
        pattern = "falling"
    elif varied:
        pattern = "varied"
    else:
        pattern = "flat"
    return pattern, segments


def score_intonation(pitch_variation: float, pattern: str) -> int:
    """语调分 (0-100)"""
    score = 50
    if 0.05 <= pitch_variation <= 0.25:
        score += 30
    elif 0.03 <= pitch_variation <= 0.35:
        score += 15
    elif pitch_variation < 0.03:
        score -= 15  # 太单调
    else:
        score -= 10  # 起伏过大

    if pattern in VARIED_PATTERNS:
        score += 20
    elif pattern in DIRECTIONAL_PATTERNS:
        score += 10
    return max(0, min(100, score))


def score_volume(std_dev: float, avg_volume: float) -> int:
    """音量稳定性分 (0-100)"""
    score = 50
    if avg_volume > -25:
        score += 20
    elif avg_volume > -35:
        score += 10
    else:
        score -= 10

    if 2 <= std_dev <= 8:
        score += 30
    elif 1 <= std_dev <= 12:
        score += 15
    elif std_dev < 1:
        score -= 5
    else:
        score -= 10
    return max(0, min(100, score))


def empty_analysis() -> ToneAnalysis:
    """采样不足时的定性分析"""
    return ToneAnalysis(
        pitch=MetricAnalysis(
            Rating.UNKNOWN,
            "Not enough speech detected for pitch analysis.",
            "Make sure you speak clearly and for a sufficient duration.",
        ),
        intonation=MetricAnalysis(Rating.UNKNOWN, "Not enough data.", ""),
        volume=MetricAnalysis(Rating.UNKNOWN, "Not enough data.", "Speak clearly into the microphone."),
        overall=MetricAnalysis(
            Rating.UNKNOWN,
            "Not enough speech was detected. Try speaking more clearly and loudly.",
            "",
        ),
    )


def build_analysis(
    avg_pitch: float,
    pitch_variation: float,
    pattern: str,
    volume_score: int,
    avg_volume: float,
) -> ToneAnalysis:
    """根据统计值生成定性评级与建议"""
    analysis = ToneAnalysis()

    if avg_pitch < 120:
        pitch_range = "low range"
    elif avg_pitch < 200:
        pitch_range = "mid range"
    else:
        pitch_range = "high range"
    analysis.pitch.detail = f"Your average pitch is {round(avg_pitch)} Hz ({pitch_range})."

    if pitch_variation < 0.03:
        analysis.pitch.rating = Rating.NEEDS_WORK
        analysis.pitch.suggestion = (
            "Your speech sounds monotone. Try varying your pitch more: emphasize key words by "
            "raising your pitch slightly, and lower it for less important words."
        )
    elif pitch_variation <= 0.25:
        analysis.pitch.rating = Rating.GOOD
        analysis.pitch.suggestion = "Good pitch variation! Your speech sounds natural and engaging."
    else:
        analysis.pitch.rating = Rating.CAUTION
        analysis.pitch.suggestion = (
            "Your pitch varies quite a lot. Try to maintain a more controlled range while still "
            "emphasizing key words."
        )

    analysis.intonation.detail = f"Your intonation pattern: {PATTERN_NAMES.get(pattern, pattern)}"
    if pattern in VARIED_PATTERNS:
        analysis.intonation.rating = Rating.GOOD
        analysis.intonation.suggestion = (
            "Excellent intonation! Your speech has natural rises and falls, making it easy to follow."
        )
    elif pattern == "flat":
        analysis.intonation.rating = Rating.NEEDS_WORK
        analysis.intonation.suggestion = (
            "Your intonation is flat. Practice reading with expression: raise pitch for questions, "
            "lower for statements, and stress important words."
        )
    else:
        analysis.intonation.rating = Rating.OK
        analysis.intonation.suggestion = (
            "Your intonation is acceptable but could be more varied. Try practicing with news "
            "readers or TED talks as models."
        )

    if avg_volume > -25:
        analysis.volume.rating = Rating.GOOD
        analysis.volume.detail = "Good volume. Your voice is clear and audible."
    elif avg_volume > -35:
        analysis.volume.rating = Rating.OK
        analysis.volume.detail = "Moderate volume. Speak a bit louder for better clarity."
    else:
        analysis.volume.rating = Rating.NEEDS_WORK
        analysis.volume.detail = "Your volume is too low. Speak louder and closer to the microphone."
    if volume_score >= 70:
        analysis.volume.suggestion = "Your volume consistency is good. Keep it up."
    else:
        analysis.volume.suggestion = (
            "Try to maintain a consistent volume level throughout. Avoid trailing off at the end "
            "of sentences."
        )

    ratings = [analysis.pitch.rating, analysis.intonation.rating, analysis.volume.rating]
    good_count = sum(1 for r in ratings if r == Rating.GOOD)
    if good_count >= 2:
        analysis.overall = MetricAnalysis(
            Rating.GOOD,
            "Your vocal delivery is strong. Natural pitch variation, clear volume, and expressive intonation.",
        )
    elif good_count == 1:
        analysis.overall = MetricAnalysis(
            Rating.OK,
            "Your vocal delivery is adequate but has room for improvement. "
            "Focus on the areas marked for attention.",
        )
    else:
        analysis.overall = MetricAnalysis(
            Rating.NEEDS_WORK,
            "Your vocal delivery needs significant improvement. "
            "Practice reading aloud daily with focus on expressiveness and clarity.",
        )
    return analysis


def summarize(pitch_history: list[PitchSample], volume_history: list[VolumeSample]) -> ToneProfile:
    """
    汇总采样为语调画像

    有声采样少于 3 个时返回 has_pitch_data=False。
    """
    pitches = [p.frequency_hz for p in pitch_history if p.frequency_hz > 0]
    min_samples = config.get("tone.min_voiced_samples", MIN_VOICED_SAMPLES)

    if len(pitches) < min_samples:
        logger.warning(f"有声采样不足 ({len(pitches)} < {min_samples})，无法分析语调")
        return ToneProfile(has_pitch_data=False, analysis=empty_analysis())

    avg_pitch = _mean(pitches)
    min_pitch = min(pitches)
    max_pitch = max(pitches)
    pitch_std = _std(pitches, avg_pitch)
    pitch_variation = pitch_std / avg_pitch if avg_pitch > 0 else 0.0

    floor_db = config.get("tone.volume_floor_db", VOLUME_FLOOR_DB)
    volumes = [v.volume_db for v in volume_history if v.volume_db > floor_db]
    avg_volume = _mean(volumes) if volumes else DEFAULT_AVG_VOLUME_DB
    volume_std = _std(volumes, avg_volume)

    pattern, segments = classify_intonation(pitches)
    intonation_score = score_intonation(pitch_variation, pattern)
    volume_consistency = score_volume(volume_std, avg_volume)

    logger.info(
        f"语调分析: 平均音高={avg_pitch:.1f}Hz, 变异系数={pitch_variation:.3f}, "
        f"走势={pattern}, 语调分={intonation_score}, 音量分={volume_consistency}"
    )

    return ToneProfile(
        has_pitch_data=True,
        avg_pitch=round(avg_pitch),
        min_pitch=round(min_pitch),
        max_pitch=round(max_pitch),
        pitch_range=round(max_pitch - min_pitch),
        pitch_std_dev=round(pitch_std),
        pitch_variation=round(pitch_variation, 2),
        avg_volume=round(avg_volume),
        volume_std_dev=round(volume_std, 1),
        intonation_pattern=pattern,
        intonation_segments=segments,
        intonation_score=intonation_score,
        volume_consistency=volume_consistency,
        pitch_history=list(pitch_history),
        volume_history=list(volume_history),
        analysis=build_analysis(avg_pitch, pitch_variation, pattern, volume_consistency, avg_volume),
    )


class ToneProfiler:
    """
    单次录音的语调采样会话

    每次录音创建一个实例：start() -> 多次 sample() -> stop()。
    时间由注入的 clock 或调用方传入的 timestamp 决定，便于用合成数据测试。
    """

    def __init__(
        self,
        sample_rate: float,
        clock: Callable[[], float] = time.monotonic,
        detector: Callable[..., float] = detect_pitch,
    ) -> None:
        self.sample_rate = sample_rate
        self.clock = clock
        self.detector = detector
        self.pitch_history: list[PitchSample] = []
        self.volume_history: list[VolumeSample] = []
        self.start_time: float | None = None
        self.is_running = False
        self._profile: ToneProfile | None = None

    def start(self, timestamp: float | None = None) -> None:
        """开始采样（清空缓冲区）"""
        self.pitch_history = []
        self.volume_history = []
        self.start_time = timestamp if timestamp is not None else self.clock()
        self.is_running = True
        self._profile = None

    def sample(self, frame, timestamp: float | None = None) -> PitchSample | None:
        """
        处理一帧音频

        Args:
            frame: 时域采样
            timestamp: 采样时刻（秒）；缺省时读取 clock

        Returns:
            检测到音高时返回 PitchSample，否则 None
        """
        if not self.is_running:
            logger.debug("采样会话未运行，忽略该帧")
            return None

        now = timestamp if timestamp is not None else self.clock()
        elapsed = max(0.0, now - (self.start_time or 0.0))

        volume_db = rms_to_db(frame_rms(frame))
        pitch = self.detector(frame, self.sample_rate)

        self.volume_history.append(VolumeSample(time_sec=elapsed, volume_db=volume_db, frequency_hz=pitch or 0.0))
        if pitch > 0:
            sample = PitchSample(time_sec=elapsed, frequency_hz=pitch, volume_db=volume_db)
            self.pitch_history.append(sample)
            return sample
        return None

    def stop(self) -> ToneProfile:
        """结束采样并返回语调画像；可在任意采样边界调用，重复调用返回同一结果"""
        if self._profile is not None:
            return self._profile
        self.is_running = False
        self._profile = summarize(self.pitch_history, self.volume_history)
        return self._profile


def analyze_signal(
    samples,
    sample_rate: float,
    frame_size: int | None = None,
    hop: int | None = None,
) -> ToneProfile:
    """
    对整段音频做语调分析

    按 hop 切帧，时间戳为 帧起点 / 采样率。

    Args:
        samples: 时域采样（归一化到 [-1, 1]）
        sample_rate: 采样率
        frame_size: 帧长（默认 2048）
        hop: 帧移（默认等于帧长）

    Returns:
        ToneProfile
    """
    if not sample_rate or sample_rate <= 0:
        logger.warning(f"采样率无效 ({sample_rate})，无法分析语调")
        return ToneProfile(has_pitch_data=False, analysis=empty_analysis())

    frame_size = frame_size or config.get("audio.frame_size", 2048)
    hop = hop or frame_size
    data = np.asarray(samples, dtype=np.float64).ravel()

    profiler = ToneProfiler(sample_rate)
    profiler.start(timestamp=0.0)
    for offset, frame in iter_frames(data, frame_size, hop):
        profiler.sample(frame, timestamp=offset / sample_rate)
    return profiler.stop()
