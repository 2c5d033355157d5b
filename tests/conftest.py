"""
口语评测引擎 - pytest 配置
"""
import pytest


@pytest.fixture(scope="session")
def samples_dir():
    """返回 samples 目录路径"""
    from pathlib import Path
    return Path(__file__).parent.parent / "samples"


@pytest.fixture(scope="session")
def test_manifest(samples_dir):
    """返回测试 manifest 文件路径"""
    return samples_dir / "test_manifest.csv"


@pytest.fixture(scope="session")
def test_tasks(samples_dir):
    """返回测试题库文件路径"""
    return samples_dir / "test_tasks.yaml"


@pytest.fixture(autouse=True)
def reset_config():
    """每个测试前后清空全局配置，评分使用模块常量默认值"""
    from speakscore.config import config

    config.reset()
    yield config
    config.reset()


@pytest.fixture
def sine():
    """生成正弦波采样"""
    import numpy as np

    def _sine(freq: float, duration_sec: float = 0.128, sample_rate: int = 16000, amplitude: float = 0.5):
        t = np.arange(int(duration_sec * sample_rate)) / sample_rate
        return amplitude * np.sin(2 * np.pi * freq * t)

    return _sine


@pytest.fixture
def make_utterance():
    """
    构造识别结果

    words 个词均匀分布在 events 个识别事件中，事件间隔 gap_ms。
    """
    from speakscore.models import Utterance, WordEvent

    def _make(words: int, elapsed_sec: float, events: int = 1, gap_ms: float = 1000, confidence: float = 0.9):
        per_event, rest = divmod(words, events) if events else (0, 0)
        word_events = [
            WordEvent(time_ms=i * gap_ms, word_count=per_event + (1 if i < rest else 0))
            for i in range(events)
        ]
        return Utterance(
            text=" ".join(["word"] * words),
            events=word_events,
            confidences=[confidence],
            elapsed_sec=elapsed_sec,
        )

    return _make


@pytest.fixture
def wav_file(tmp_path):
    """写出 1 秒 16kHz 单声道 150Hz 正弦波 WAV 文件"""
    import wave

    import numpy as np

    path = tmp_path / "tone.wav"
    t = np.arange(16000) / 16000
    data = (0.5 * np.sin(2 * np.pi * 150 * t) * 32767).astype(np.int16)
    with wave.open(str(path), "wb") as f:
        f.setnchannels(1)
        f.setsampwidth(2)
        f.setframerate(16000)
        f.writeframes(data.tobytes())
    return path


@pytest.fixture
def temp_output_dir(tmp_path):
    """返回临时输出目录"""
    return tmp_path / "output"
