"""
命令行测试
"""
import json

from typer.testing import CliRunner

runner = CliRunner()

READING = "The quick brown fox jumps over the lazy dog"


def _write_request(path):
    path.write_text(json.dumps({
        "task_id": "ra_001",
        "record_time_sec": 5,
        "question": {"task_type": "read-aloud", "reference_text": READING},
        "response": {"text": READING, "confidences": [0.95], "events": [[0, 9]], "elapsed_sec": 4},
    }))
    return path


class TestScoreCommand:
    """测试 score 命令"""

    def test_score_writes_json(self, tmp_path):
        from speakscore.cli import app

        request = _write_request(tmp_path / "request.json")
        out = tmp_path / "out" / "result.json"

        result = runner.invoke(app, ["score", "--request", str(request), "--out", str(out)])

        assert result.exit_code == 0, result.output
        assert "Read Aloud (RA)" in result.output
        data = json.loads(out.read_text(encoding="utf-8"))
        assert data["overall_score"] == 90
        assert data["band"]["label"] == "Expert"

    def test_score_with_audio(self, tmp_path, wav_file):
        from speakscore.cli import app

        request = _write_request(tmp_path / "request.json")
        out = tmp_path / "result.json"

        result = runner.invoke(app, ["score", "--request", str(request), "--audio", str(wav_file), "--out", str(out)])

        assert result.exit_code == 0, result.output
        data = json.loads(out.read_text(encoding="utf-8"))
        assert data["tone"]["has_pitch_data"] is True

    def test_missing_request(self, tmp_path):
        from speakscore.cli import app

        result = runner.invoke(app, ["score", "--request", str(tmp_path / "missing.json")])
        assert result.exit_code == 1

    def test_invalid_request(self, tmp_path):
        from speakscore.cli import app

        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps({"question": {"task_type": "essay"}}))

        result = runner.invoke(app, ["score", "--request", str(bad)])
        assert result.exit_code == 1


class TestToneCommand:
    """测试 tone 命令"""

    def test_tone(self, tmp_path, wav_file):
        from speakscore.cli import app

        out = tmp_path / "tone.json"
        result = runner.invoke(app, ["tone", "--audio", str(wav_file), "--out", str(out)])

        assert result.exit_code == 0, result.output
        data = json.loads(out.read_text(encoding="utf-8"))
        assert data["intonation_pattern"] == "flat"
        assert 145 <= data["avg_pitch"] <= 155

    def test_missing_audio(self, tmp_path):
        from speakscore.cli import app

        result = runner.invoke(app, ["tone", "--audio", str(tmp_path / "missing.wav")])
        assert result.exit_code == 1


class TestBatchCommand:
    """测试 batch 命令"""

    def test_batch(self, test_manifest, test_tasks, temp_output_dir):
        from speakscore.cli import app

        result = runner.invoke(app, [
            "batch",
            "--manifest", str(test_manifest),
            "--tasks", str(test_tasks),
            "--out", str(temp_output_dir),
            "-j", "2",
        ])

        assert result.exit_code == 0, result.output
        data = json.loads((temp_output_dir / "results.json").read_text(encoding="utf-8"))
        assert [r["task_id"] for r in data] == ["ra_001", "rs_001", "asq_001", "di_001"]

    def test_batch_missing_tasks(self, test_manifest, tmp_path):
        from speakscore.cli import app

        result = runner.invoke(app, [
            "batch",
            "--manifest", str(test_manifest),
            "--tasks", str(tmp_path / "missing.yaml"),
            "--out", str(tmp_path),
        ])
        assert result.exit_code == 1
