"""
维度评分模块测试
"""
import pytest


class TestPronunciation:
    """测试发音档位"""

    @pytest.mark.parametrize("confidence,recognized,expected", [
        (0.0, "", ""),
        (0.0, "the quick brown fox", "the quick brown fox"),
        (1.0, "hello", ""),
        (1.0, "hello", "the quick brown fox jumps over the lazy dog"),
        (5.0, "the quick brown fox", "the quick brown fox"),
        (-3.0, "banana", "the quick brown fox"),
        (float("nan"), "some words here", ""),
    ])
    def test_band_always_in_range(self, confidence, recognized, expected):
        """任何输入下档位都在 0-5"""
        from speakscore.pipeline.traits import pronunciation_score

        score = pronunciation_score(confidence, recognized, expected)
        assert score.band in {0, 1, 2, 3, 4, 5}
        assert score.raw == score.band
        assert score.max == 5

    def test_nan_confidence_scores_like_zero(self):
        """非有限置信度按 0 处理，不能进入最高档"""
        from speakscore.pipeline.traits import adjust_confidence, pronunciation_score

        text = "hello there my friend how are you"
        nan_score = pronunciation_score(float("nan"), text)
        zero_score = pronunciation_score(0.0, text)

        assert nan_score.band == zero_score.band == 0
        assert pronunciation_score(float("inf"), text).band == 0
        assert adjust_confidence(float("nan"), 10, 0.5) == 0.0

    def test_empty_transcript_is_zero(self):
        from speakscore.pipeline.traits import pronunciation_score

        assert pronunciation_score(0.95, "", "the quick brown fox").band == 0

    def test_perfect_reading_is_top_band(self):
        from speakscore.pipeline.traits import pronunciation_score

        text = "the quick brown fox jumps over the lazy dog"
        score = pronunciation_score(0.95, text, text)
        assert score.band == 5
        assert score.descriptor == "Highly Proficient"

    def test_short_overconfident_answer_dampened(self):
        """<= 3 词且置信度 > 0.9 时压到 0.85"""
        from speakscore.pipeline.traits import adjust_confidence

        assert adjust_confidence(0.99, 2, 1.0) == pytest.approx(0.85)
        assert adjust_confidence(0.99, 10, 1.0) == pytest.approx(0.99)

    def test_low_confidence_boosted_by_accuracy(self):
        from speakscore.pipeline.traits import adjust_confidence

        assert adjust_confidence(0.5, 10, 1.0) == pytest.approx(0.75)
        assert adjust_confidence(0.5, 10, 0.5) == pytest.approx(0.5)

    def test_length_penalty(self):
        from speakscore.pipeline.traits import length_penalty

        assert length_penalty(2, 10) == 0.30
        assert length_penalty(4, 10) == 0.15
        assert length_penalty(6, 10) == 0.05
        assert length_penalty(8, 10) == 0.0
        assert length_penalty(3, 0) == 0.0

    def test_close_matches_raise_value(self):
        """近似读音比完全读错得分更高"""
        from speakscore.pipeline.traits import pronunciation_value

        reference = "I think this is very good work"
        near = pronunciation_value(0.8, "I tink this is wery good work", reference)
        far = pronunciation_value(0.8, "I banana this is elephant good work", reference)
        assert near > far

    def test_threshold_override(self, reset_config):
        from speakscore.pipeline.traits import pronunciation_score

        text = "the quick brown fox jumps over the lazy dog"
        reset_config.update({"pronunciation": {"band_thresholds": [0.99, 0.98, 0.97, 0.96, 0.95]}})
        assert pronunciation_score(0.95, text, text).band == 0


class TestFluencyMetrics:
    """测试流利度指标"""

    def test_pause_classification(self):
        """> 3000ms 为长停顿，(1500, 3000] 为迟疑"""
        from speakscore.models import Utterance, WordEvent
        from speakscore.pipeline.traits import fluency_metrics

        utterance = Utterance(
            text="one two three four five six",
            events=[WordEvent(0, 2), WordEvent(3500, 2), WordEvent(5200, 1), WordEvent(8200, 1)],
            elapsed_sec=10,
        )
        metrics = fluency_metrics(utterance, 40)

        assert metrics.long_pauses == 1
        assert metrics.hesitations == 2
        assert metrics.wpm == pytest.approx(36.0)
        assert metrics.avg_words_per_event == pytest.approx(1.5)
        assert metrics.time_used_ratio == pytest.approx(0.25)

    def test_zero_elapsed_is_safe(self, make_utterance):
        from speakscore.pipeline.traits import fluency_metrics

        metrics = fluency_metrics(make_utterance(10, elapsed_sec=0), 40)
        assert metrics.wpm == 0.0

    def test_negative_elapsed_clamped(self, make_utterance):
        from speakscore.pipeline.traits import fluency_metrics

        metrics = fluency_metrics(make_utterance(10, elapsed_sec=-5), 40)
        assert metrics.wpm == 0.0
        assert metrics.time_used_ratio == 0.0


class TestFluencyBand:
    """测试流利度档位"""

    def test_full_time_natural_pace_is_band_five(self, make_utterance):
        """40 秒用满、约 140 WPM、无停顿 -> 5 档"""
        from speakscore.pipeline.traits import fluency_score

        utterance = make_utterance(93, elapsed_sec=40, events=10, gap_ms=1000)
        score, metrics = fluency_score(utterance, 40)

        assert metrics.wpm == pytest.approx(139.5)
        assert metrics.long_pauses == 0
        assert metrics.hesitations == 0
        assert score.band == 5
        assert score.descriptor == "Highly Proficient"

    def test_decision_table(self):
        from speakscore.models import FluencyMetrics
        from speakscore.pipeline.traits import fluency_band

        assert fluency_band(FluencyMetrics(100, 150, 0, 0, 9)) == 5
        assert fluency_band(FluencyMetrics(100, 150, 0, 1, 6)) == 4
        assert fluency_band(FluencyMetrics(100, 90, 1, 3, 3)) == 3
        assert fluency_band(FluencyMetrics(100, 60, 2, 5, 2)) == 2
        assert fluency_band(FluencyMetrics(3, 20, 5, 5, 1)) == 1
        assert fluency_band(FluencyMetrics(2, 20, 5, 5, 1)) == 0

    def test_short_response_demotion(self):
        """时间利用不足降档，且降档不会抬高档位"""
        from speakscore.pipeline.traits import demote_for_time_used

        assert demote_for_time_used(5, 0.25) == 4
        assert demote_for_time_used(5, 0.10) == 3
        assert demote_for_time_used(2, 0.20) == 2
        assert demote_for_time_used(3, 0.10) == 1
        assert demote_for_time_used(1, 0.10) == 1
        assert demote_for_time_used(0, 0.05) == 0
        assert demote_for_time_used(4, 0.50) == 4

    def test_empty_transcript(self, make_utterance):
        from speakscore.pipeline.traits import fluency_score

        score, metrics = fluency_score(make_utterance(0, elapsed_sec=10), 40)
        assert score.band == 0
        assert metrics.word_count == 0


class TestVocabularyTrait:
    """测试 ASQ 词汇分透传"""

    def test_pass_through(self):
        from speakscore.models import ContentScore
        from speakscore.pipeline.traits import vocabulary_from_content

        correct = vocabulary_from_content(ContentScore(name="vocabulary", raw=1, max=1, band=1))
        wrong = vocabulary_from_content(ContentScore(name="vocabulary", raw=0, max=1, band=0))
        assert (correct.raw, correct.descriptor) == (1, "Correct")
        assert (wrong.raw, wrong.descriptor) == (0, "Incorrect")
