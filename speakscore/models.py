"""
口语评测引擎 - 数据模型定义

定义统一的数据结构，用于在各模块间传递数据。
"""
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class TaskType(str, Enum):
    """题型"""
    READ_ALOUD = "read-aloud"
    REPEAT_SENTENCE = "repeat-sentence"
    DESCRIBE_IMAGE = "describe-image"
    RETELL_LECTURE = "retell-lecture"
    ANSWER_SHORT_QUESTION = "answer-short-question"
    SUMMARIZE_GROUP_DISCUSSION = "summarize-group-discussion"
    RESPOND_TO_SITUATION = "respond-to-situation"


class Rating(str, Enum):
    """定性评级"""
    GOOD = "good"
    OK = "ok"
    NEEDS_WORK = "needs-work"
    CAUTION = "caution"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class TaskSpec:
    """题型元数据（准备/录音时长与评分维度）"""
    task_type: TaskType
    name: str
    short_name: str
    prep_time_sec: int
    record_time_sec: int
    traits: tuple[str, ...]


_CORE_TRAITS = ("content", "pronunciation", "fluency")

TASK_SPECS: dict[TaskType, TaskSpec] = {
    TaskType.READ_ALOUD: TaskSpec(TaskType.READ_ALOUD, "Read Aloud", "RA", 35, 40, _CORE_TRAITS),
    TaskType.REPEAT_SENTENCE: TaskSpec(TaskType.REPEAT_SENTENCE, "Repeat Sentence", "RS", 0, 15, _CORE_TRAITS),
    TaskType.DESCRIBE_IMAGE: TaskSpec(TaskType.DESCRIBE_IMAGE, "Describe Image", "DI", 25, 40, _CORE_TRAITS),
    TaskType.RETELL_LECTURE: TaskSpec(TaskType.RETELL_LECTURE, "Re-tell Lecture", "RL", 10, 40, _CORE_TRAITS),
    TaskType.ANSWER_SHORT_QUESTION: TaskSpec(
        TaskType.ANSWER_SHORT_QUESTION, "Answer Short Question", "ASQ", 0, 10, ("vocabulary",)
    ),
    TaskType.SUMMARIZE_GROUP_DISCUSSION: TaskSpec(
        TaskType.SUMMARIZE_GROUP_DISCUSSION, "Summarize Group Discussion", "SGD", 10, 60, _CORE_TRAITS
    ),
    TaskType.RESPOND_TO_SITUATION: TaskSpec(
        TaskType.RESPOND_TO_SITUATION, "Respond to a Situation", "RTS", 20, 40,
        ("appropriacy", "pronunciation", "fluency"),
    ),
}


def as_finite(value: Any, default: float = 0.0) -> float:
    """把外部传入的数值转换为有限浮点数"""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


@dataclass
class WordEvent:
    """识别事件：到达时间 (ms) 与该段词数"""
    time_ms: float
    word_count: int


@dataclass
class Utterance:
    """
    一次作答的识别结果

    由识别模块逐段产生，作答结束后定稿。
    """
    text: str = ""
    events: list[WordEvent] = field(default_factory=list)
    confidences: list[float] = field(default_factory=list)
    elapsed_sec: float = 0.0

    @property
    def confidence(self) -> float:
        """平均置信度，截断到 [0, 1]"""
        values = [min(1.0, max(0.0, as_finite(c))) for c in self.confidences]
        if not values:
            return 0.0
        return sum(values) / len(values)

    @property
    def duration_sec(self) -> float:
        """录音时长（负值截断为 0）"""
        return max(0.0, as_finite(self.elapsed_sec))


@dataclass(frozen=True)
class SpeakerTurn:
    """小组讨论中的一轮发言"""
    speaker: str
    text: str


@dataclass(frozen=True)
class ExpectedResponse:
    """题目的期望作答（由题库提供）"""
    task_type: TaskType
    reference_text: str = ""
    keywords: tuple[str, ...] = ()
    accepted_answers: tuple[str, ...] = ()
    speakers: tuple[SpeakerTurn, ...] = ()
    data_points: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExpectedResponse":
        """从题库字典构建"""
        speakers = tuple(
            SpeakerTurn(speaker=str(s.get("speaker", f"speaker_{i + 1}")), text=str(s.get("text", "")))
            for i, s in enumerate(data.get("speakers") or [])
            if isinstance(s, dict)
        )
        return cls(
            task_type=TaskType(data["task_type"]),
            reference_text=data.get("reference_text") or data.get("text") or "",
            keywords=tuple(str(k) for k in data.get("keywords") or []),
            accepted_answers=tuple(str(a) for a in data.get("accepted_answers") or []),
            speakers=speakers,
            data_points=tuple(str(p) for p in data.get("data_points") or []),
        )


@dataclass(frozen=True)
class TaskScale:
    """题型各维度满分"""
    content_max: int
    pronunciation_max: int = 5
    fluency_max: int = 5
    vocabulary_max: int = 1


@dataclass
class AlignmentResult:
    """LCS 对齐结果"""
    lcs_length: int = 0
    omissions: int = 0
    insertions: int = 0
    matched_expected: set[int] = field(default_factory=set)
    matched_recognized: set[int] = field(default_factory=set)
    close_matches: list[tuple[str, str, int]] = field(default_factory=list)


@dataclass
class TraitScore:
    """单个维度的评分"""
    name: str
    raw: float
    max: int
    band: int
    descriptor: str = ""


@dataclass
class ContentScore(TraitScore):
    """内容（或得体性）评分"""
    errors: int = 0
    composite: float | None = None
    label: str = "Content"


@dataclass
class FluencyMetrics:
    """流利度诊断指标"""
    word_count: int = 0
    wpm: float = 0.0
    long_pauses: int = 0
    hesitations: int = 0
    avg_words_per_event: float = 0.0
    time_used_ratio: float = 0.0


@dataclass
class TraitScores:
    """各维度评分集合"""
    content: ContentScore | None = None
    pronunciation: TraitScore | None = None
    fluency: TraitScore | None = None
    vocabulary: TraitScore | None = None

    def get(self, name: str) -> TraitScore | None:
        """按维度名取评分（appropriacy 即 RTS 的内容分）"""
        if name == "appropriacy":
            return self.content
        return getattr(self, name, None)


@dataclass
class OverallBand:
    """综合分等级"""
    label: str
    color: str


@dataclass
class PitchSample:
    """音高采样点"""
    time_sec: float
    frequency_hz: float
    volume_db: float


@dataclass
class VolumeSample:
    """音量采样点（无论是否检测到音高都会记录）"""
    time_sec: float
    volume_db: float
    frequency_hz: float = 0.0


@dataclass
class MetricAnalysis:
    """单项定性分析"""
    rating: Rating = Rating.UNKNOWN
    detail: str = ""
    suggestion: str = ""


@dataclass
class ToneAnalysis:
    """语调/音量定性分析"""
    pitch: MetricAnalysis = field(default_factory=MetricAnalysis)
    intonation: MetricAnalysis = field(default_factory=MetricAnalysis)
    volume: MetricAnalysis = field(default_factory=MetricAnalysis)
    overall: MetricAnalysis = field(default_factory=MetricAnalysis)


@dataclass
class ToneProfile:
    """一次录音的语调画像"""
    has_pitch_data: bool = False
    avg_pitch: float = 0.0
    min_pitch: float = 0.0
    max_pitch: float = 0.0
    pitch_range: float = 0.0
    pitch_std_dev: float = 0.0
    pitch_variation: float = 0.0
    avg_volume: float = 0.0
    volume_std_dev: float = 0.0
    intonation_pattern: str = "insufficient"
    intonation_segments: list[float] = field(default_factory=list)
    intonation_score: int = 0
    volume_consistency: int = 0
    pitch_history: list[PitchSample] = field(default_factory=list)
    volume_history: list[VolumeSample] = field(default_factory=list)
    analysis: ToneAnalysis = field(default_factory=ToneAnalysis)

    def to_dict(self) -> dict[str, Any]:
        """转换为字典格式（用于 JSON 输出）"""
        def _metric(m: MetricAnalysis) -> dict[str, str]:
            return {"rating": m.rating.value, "detail": m.detail, "suggestion": m.suggestion}

        return {
            "has_pitch_data": self.has_pitch_data,
            "avg_pitch": self.avg_pitch,
            "min_pitch": self.min_pitch,
            "max_pitch": self.max_pitch,
            "pitch_range": self.pitch_range,
            "pitch_std_dev": self.pitch_std_dev,
            "pitch_variation": self.pitch_variation,
            "avg_volume": self.avg_volume,
            "volume_std_dev": self.volume_std_dev,
            "intonation_pattern": self.intonation_pattern,
            "intonation_segments": [round(s, 1) for s in self.intonation_segments],
            "intonation_score": self.intonation_score,
            "volume_consistency": self.volume_consistency,
            "pitch_history": [
                {"t": round(p.time_sec, 3), "f": p.frequency_hz, "db": round(p.volume_db, 1)}
                for p in self.pitch_history
            ],
            "volume_history": [
                {"t": round(v.time_sec, 3), "db": round(v.volume_db, 1), "f": v.frequency_hz}
                for v in self.volume_history
            ],
            "analysis": {
                "pitch": _metric(self.analysis.pitch),
                "intonation": _metric(self.analysis.intonation),
                "volume": _metric(self.analysis.volume),
                "overall": _metric(self.analysis.overall),
            },
        }


@dataclass
class AccentRule:
    """口音替换规则（声明式）"""
    id: str
    pattern: str
    replacements: list[str]
    sound: str
    description: str
    examples: list[str] = field(default_factory=list)
    tip: str = ""


@dataclass
class AccentProfile:
    """某一口音的规则集合"""
    id: str
    name: str
    rules: list[AccentRule] = field(default_factory=list)


@dataclass
class AccentReport:
    """口音分析结果"""
    detected_accent: str | None = None
    accent_name: str | None = None
    confidence: int = 0
    accent_scores: dict[str, float] = field(default_factory=dict)
    problem_words: list[dict[str, str]] = field(default_factory=list)
    problem_sounds: list[dict[str, Any]] = field(default_factory=list)
    tips: list[dict[str, Any]] = field(default_factory=list)
    missed: list[str] = field(default_factory=list)
    perfect: bool = False


@dataclass
class Feedback:
    """反馈建议"""
    summary: str = ""
    messages: list[str] = field(default_factory=list)
    tips: list[str] = field(default_factory=list)
    progression_tip: str = ""


@dataclass
class EvaluationRequest:
    """一次评测请求"""
    expected: ExpectedResponse
    utterance: Utterance = field(default_factory=Utterance)
    record_time_sec: float | None = None
    task_id: str = ""
    student_id: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EvaluationRequest":
        """
        从 JSON 字典构建请求

        格式示例::

            {
              "question": {"task_type": "read-aloud", "reference_text": "..."},
              "response": {"text": "...", "confidences": [0.9],
                           "events": [[1200, 5], [2300, 4]], "elapsed_sec": 30}
            }
        """
        question = data.get("question") or {}
        response = data.get("response") or {}

        events = []
        for item in response.get("events") or []:
            if isinstance(item, dict):
                time_ms, count = item.get("time_ms", 0), item.get("word_count", 0)
            else:
                time_ms, count = item[0], item[1]
            events.append(WordEvent(time_ms=as_finite(time_ms), word_count=int(as_finite(count))))

        record_time = data.get("record_time_sec")
        return cls(
            expected=ExpectedResponse.from_dict(question),
            utterance=Utterance(
                text=response.get("text") or "",
                events=events,
                confidences=[as_finite(c) for c in response.get("confidences") or []],
                elapsed_sec=as_finite(response.get("elapsed_sec", 0.0)),
            ),
            record_time_sec=as_finite(record_time) if record_time is not None else None,
            task_id=str(data.get("task_id", "")),
            student_id=str(data.get("student_id", "")),
        )


@dataclass
class EvaluationResult:
    """
    完整评测结果

    这是整个评分流程的最终输出，交给展示/存储层。
    """
    task_type: TaskType
    scores: TraitScores = field(default_factory=TraitScores)
    overall_score: int = 0
    band: OverallBand = field(default_factory=lambda: OverallBand(label="Needs Practice", color="#ef4444"))
    fluency_metrics: FluencyMetrics | None = None
    feedback: Feedback = field(default_factory=Feedback)
    accent: AccentReport | None = None
    tone: ToneProfile | None = None
    task_id: str = ""
    student_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        """转换为字典格式（用于 JSON 输出）"""
        def _trait(t: TraitScore | None) -> dict[str, Any] | None:
            if t is None:
                return None
            data = {
                "name": t.name,
                "raw": t.raw,
                "max": t.max,
                "band": t.band,
                "descriptor": t.descriptor,
            }
            if isinstance(t, ContentScore):
                data["errors"] = t.errors
                data["composite"] = round(t.composite, 3) if t.composite is not None else None
                data["label"] = t.label
            return data

        return {
            "task_id": self.task_id,
            "student_id": self.student_id,
            "task_type": self.task_type.value,
            "scores": {
                "content": _trait(self.scores.content),
                "pronunciation": _trait(self.scores.pronunciation),
                "fluency": _trait(self.scores.fluency),
                "vocabulary": _trait(self.scores.vocabulary),
            },
            "overall_score": self.overall_score,
            "band": {"label": self.band.label, "color": self.band.color},
            "fluency_metrics": {
                "word_count": self.fluency_metrics.word_count,
                "wpm": round(self.fluency_metrics.wpm, 1),
                "long_pauses": self.fluency_metrics.long_pauses,
                "hesitations": self.fluency_metrics.hesitations,
                "avg_words_per_event": round(self.fluency_metrics.avg_words_per_event, 2),
                "time_used_ratio": round(self.fluency_metrics.time_used_ratio, 3),
            } if self.fluency_metrics else None,
            "feedback": {
                "summary": self.feedback.summary,
                "messages": self.feedback.messages,
                "tips": self.feedback.tips,
                "progression_tip": self.feedback.progression_tip,
            },
            "accent": {
                "detected_accent": self.accent.detected_accent,
                "accent_name": self.accent.accent_name,
                "confidence": self.accent.confidence,
                "accent_scores": self.accent.accent_scores,
                "problem_words": self.accent.problem_words,
                "problem_sounds": self.accent.problem_sounds,
                "tips": self.accent.tips,
                "missed": self.accent.missed,
                "perfect": self.accent.perfect,
            } if self.accent else None,
            "tone": self.tone.to_dict() if self.tone else None,
        }
