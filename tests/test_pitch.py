"""
基频检测模块测试
"""
import numpy as np
import pytest


class TestDetectPitch:
    """测试 detect_pitch 函数"""

    def test_silence_returns_zero(self):
        """全零帧返回 0"""
        from speakscore.acoustic.pitch import detect_pitch

        assert detect_pitch(np.zeros(2048), 16000) == 0

    def test_sine_150hz(self, sine):
        """150Hz 正弦波误差在 ±3% 以内"""
        from speakscore.acoustic.pitch import detect_pitch

        frequency = detect_pitch(sine(150, duration_sec=2048 / 16000), 16000)
        assert frequency == pytest.approx(150, rel=0.03)

    @pytest.mark.parametrize("freq", [100, 220, 330])
    def test_voice_range(self, sine, freq):
        from speakscore.acoustic.pitch import detect_pitch

        frequency = detect_pitch(sine(freq, duration_sec=2048 / 16000), 16000)
        assert frequency == pytest.approx(freq, rel=0.03)

    def test_out_of_voice_range(self, sine):
        """低于 75Hz 的周期信号被拒绝"""
        from speakscore.acoustic.pitch import detect_pitch

        assert detect_pitch(sine(40, duration_sec=4096 / 16000), 16000) == 0

    def test_noise_rejected_or_in_range(self):
        """白噪声没有明显周期，不能给出范围外的频率"""
        from speakscore.acoustic.pitch import detect_pitch

        rng = np.random.default_rng(0)
        frequency = detect_pitch(rng.uniform(-0.5, 0.5, 2048), 16000)
        assert frequency == 0 or 75 <= frequency <= 500

    def test_non_finite_samples(self, sine):
        from speakscore.acoustic.pitch import detect_pitch

        frame = sine(150, duration_sec=2048 / 16000)
        frame[10] = np.nan
        frame[20] = np.inf
        frequency = detect_pitch(frame, 16000)
        assert np.isfinite(frequency)

    def test_degenerate_input(self):
        from speakscore.acoustic.pitch import detect_pitch

        assert detect_pitch([], 16000) == 0
        assert detect_pitch(np.ones(2048) * 0.5, 0) == 0


class TestVolume:
    """测试音量换算"""

    def test_rms_and_db(self):
        from speakscore.acoustic.pitch import frame_rms, rms_to_db

        assert frame_rms(np.ones(100) * 0.5) == pytest.approx(0.5)
        assert rms_to_db(1.0) == pytest.approx(0.0)
        assert rms_to_db(0.0) == pytest.approx(-100.0)
