"""
批处理模块测试
"""
import pytest


class TestLoadManifest:
    """测试 manifest 加载"""

    def test_load_valid_manifest(self, test_manifest):
        """应该正确加载有效的 manifest"""
        from speakscore.batch import load_manifest

        rows = list(load_manifest(test_manifest))

        assert len(rows) == 5
        assert "task_id" in rows[0]
        assert "student_id" in rows[0]
        assert "transcript" in rows[0]

    def test_load_nonexistent_manifest(self, tmp_path):
        """加载不存在的 manifest 应该抛出异常"""
        from speakscore.batch import load_manifest

        with pytest.raises(FileNotFoundError):
            list(load_manifest(tmp_path / "nonexistent.csv"))

    def test_missing_columns(self, tmp_path):
        """缺少必要列应该报错"""
        from speakscore.batch import load_manifest

        manifest = tmp_path / "bad_manifest.csv"
        manifest.write_text("task_id,student_id,audio_path\nra_001,student_a,a.wav\n")

        with pytest.raises(ValueError, match="transcript"):
            list(load_manifest(manifest))


class TestLoadTasks:
    """测试题库加载"""

    def test_load_valid_tasks(self, test_tasks):
        from speakscore.batch import load_tasks
        from speakscore.models import TaskType

        tasks = load_tasks(test_tasks)

        assert set(tasks) == {"ra_001", "rs_001", "di_001", "asq_001"}
        for task_id, task in tasks.items():
            assert task.task_id == task_id
        assert tasks["ra_001"].record_time_sec == 5
        assert tasks["rs_001"].record_time_sec is None
        assert tasks["asq_001"].expected.task_type == TaskType.ANSWER_SHORT_QUESTION
        assert tasks["asq_001"].expected.accepted_answers == ("thermometer",)

    def test_invalid_task_type(self, tmp_path):
        from speakscore.batch import load_tasks

        path = tmp_path / "tasks.yaml"
        path.write_text("tasks:\n  x_001:\n    task_type: essay\n")

        with pytest.raises(ValueError, match="x_001"):
            load_tasks(path)


class TestParseEvents:
    """测试事件列解析"""

    def test_parse(self):
        from speakscore.batch import parse_events

        events = parse_events("0:5 1200:4")
        assert [(e.time_ms, e.word_count) for e in events] == [(0, 5), (1200, 4)]

    def test_skip_malformed(self):
        from speakscore.batch import parse_events

        assert len(parse_events("0:5 garbage 900:2")) == 2
        assert parse_events("") == []
        assert parse_events(None) == []


class TestBuildRequests:
    """测试请求构建"""

    def test_build_requests_from_manifest(self, test_manifest, test_tasks):
        """未知题目跳过，其余按 manifest 顺序构建"""
        from speakscore.batch import build_requests, load_tasks

        requests = build_requests(test_manifest, load_tasks(test_tasks))

        assert [r.task_id for r in requests] == ["ra_001", "rs_001", "asq_001", "di_001"]
        assert requests[0].utterance.confidence == pytest.approx(0.95)
        assert requests[0].record_time_sec == 5
        assert requests[1].utterance.events[1].time_ms == 900
        assert requests[3].utterance.text == ""
        assert requests[3].utterance.confidences == []


class TestRunBatch:
    """测试批量评测"""

    def test_results_in_manifest_order(self, test_manifest, test_tasks):
        from speakscore.batch import build_requests, load_tasks, run_batch

        requests = build_requests(test_manifest, load_tasks(test_tasks))
        progress = []
        results = run_batch(requests, max_workers=3, progress_callback=lambda c, t, r: progress.append((c, t)))

        assert [r.task_id for r in results] == [r.task_id for r in requests]
        assert results[0].overall_score == 90
        assert results[2].overall_score == 90
        assert results[3].overall_score == 0
        assert sorted(c for c, _ in progress) == [1, 2, 3, 4]

    def test_matches_sequential_evaluation(self, test_manifest, test_tasks):
        """并发结果与逐条评测一致"""
        from speakscore.batch import build_requests, load_tasks, run_batch
        from speakscore.pipeline.evaluate import evaluate_response

        requests = build_requests(test_manifest, load_tasks(test_tasks))
        parallel = run_batch(requests, max_workers=4)
        sequential = [evaluate_response(r) for r in requests]

        assert [r.to_dict() for r in parallel] == [r.to_dict() for r in sequential]

    def test_empty_batch(self):
        from speakscore.batch import run_batch

        assert run_batch([]) == []
