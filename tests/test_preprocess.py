"""
音频加载模块测试
"""
import numpy as np
import pytest


class TestLoadAudio:
    """测试 load_audio 函数"""

    def test_load_wav(self, wav_file):
        """WAV 文件应解码为 [-1, 1] 范围的单声道采样"""
        from speakscore.acoustic.preprocess import load_audio

        samples, sample_rate = load_audio(wav_file)

        assert sample_rate == 16000
        assert samples.size == 16000
        assert samples.dtype == np.float32
        assert np.max(np.abs(samples)) <= 1.0
        assert np.max(np.abs(samples)) == pytest.approx(0.5, abs=0.01)

    def test_load_nonexistent_file(self, tmp_path):
        """加载不存在的文件应该抛出异常"""
        from speakscore.acoustic.preprocess import load_audio

        with pytest.raises(FileNotFoundError):
            load_audio(tmp_path / "nonexistent.wav")

    def test_load_invalid_file(self, tmp_path):
        """无法解码的文件抛出 RuntimeError"""
        from speakscore.acoustic.preprocess import load_audio

        bad = tmp_path / "bad.wav"
        bad.write_bytes(b"not a wav file")

        with pytest.raises(RuntimeError):
            load_audio(bad)


class TestIterFrames:
    """测试 iter_frames 函数"""

    def test_frames_and_offsets(self):
        from speakscore.acoustic.preprocess import iter_frames

        frames = list(iter_frames(np.arange(10), 4))
        assert [offset for offset, _ in frames] == [0, 4]
        assert all(frame.size == 4 for _, frame in frames)

    def test_hop(self):
        from speakscore.acoustic.preprocess import iter_frames

        offsets = [offset for offset, _ in iter_frames(np.arange(10), 4, hop=2)]
        assert offsets == [0, 2, 4, 6]

    def test_short_input(self):
        from speakscore.acoustic.preprocess import iter_frames

        assert list(iter_frames(np.arange(3), 4)) == []

    def test_invalid_size(self):
        from speakscore.acoustic.preprocess import iter_frames

        with pytest.raises(ValueError):
            list(iter_frames(np.arange(10), 0))
