"""
口音分析模块

比较参考文本与识别文本，把漏读词与多出的词配对为"替换"，
再用声明式规则库判断替换符合哪种口音的典型发音偏差。
"""
import logging
import re
from pathlib import Path
from typing import Any, Sequence

import yaml

from speakscore.models import AccentProfile, AccentReport, AccentRule
from speakscore.pipeline.aggregate import round_half_up
from speakscore.pipeline.align import edit_distance, normalize

logger = logging.getLogger(__name__)

# 规则库路径
RULES_PATH = Path(__file__).parent / "accent_rules.yaml"

DROPPED = "(dropped)"
SUBSTITUTION_MAX_RATIO = 0.6
MISSED_PATTERN_WEIGHT = 0.3
MAX_CONFIDENCE = 95

# 缓存的规则库
_rules_cache: dict[str, Any] | None = None


def load_rules() -> dict[str, Any]:
    """
    加载口音规则库

    Returns:
        {"accents": list[AccentProfile], "drills": dict[str, list[list[str]]]}
    """
    global _rules_cache

    if _rules_cache is not None:
        return _rules_cache

    if not RULES_PATH.exists():
        logger.warning(f"口音规则库不存在: {RULES_PATH}")
        _rules_cache = {"accents": [], "drills": {}}
        return _rules_cache

    with open(RULES_PATH, encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    accents = []
    for item in raw.get("accents", []):
        rules = [
            AccentRule(
                id=r["id"],
                pattern=r["pattern"],
                replacements=[str(x) for x in r.get("replacements") or []],
                sound=str(r.get("sound", "")),
                description=r.get("description", ""),
                examples=list(r.get("examples") or []),
                tip=r.get("tip", ""),
            )
            for r in item.get("rules", [])
        ]
        accents.append(AccentProfile(id=item["id"], name=item.get("name", item["id"]), rules=rules))

    _rules_cache = {"accents": accents, "drills": raw.get("drills") or {}}
    logger.info(f"已加载口音规则库，共 {len(accents)} 种口音")
    return _rules_cache


def _search(rule: AccentRule, word: str) -> bool:
    return re.search(rule.pattern, word, re.IGNORECASE) is not None


def matches_rule(rule: AccentRule, expected: str, heard: str) -> bool:
    """
    判断一次替换 expected -> heard 是否符合规则

    - 整词丢失：只有 final/drop 类规则且期望词命中 pattern 时匹配
    - 期望词必须命中 pattern
    - 空替换（删音）：听到的词更短即匹配
    - 把 pattern 替换为候选音后与听到的词编辑距离 <= 1，
      或听到的词含候选音而期望词不含，均视为匹配
    """
    if heard == DROPPED:
        if "final" in rule.id or "drop" in rule.id:
            return _search(rule, expected)
        return False

    if not _search(rule, expected):
        return False

    for replacement in rule.replacements:
        if replacement == "":
            if len(heard) < len(expected):
                return True
            continue
        modified = re.sub(rule.pattern, replacement, expected, flags=re.IGNORECASE)
        if edit_distance(modified, heard) <= 1:
            return True
        if replacement in heard and replacement not in expected:
            return True
    return False


def find_substitutions(missed: Sequence[str], extra: Sequence[str]) -> list[dict[str, Any]]:
    """
    为每个漏读词寻找最接近的多出词

    编辑距离需 < 0.6 × 较长词长；每个多出词只用一次。
    找不到时记为整词丢失。
    """
    substitutions = []
    used: set[str] = set()
    for expected in missed:
        best_match = None
        best_distance = None
        for heard in extra:
            if heard in used:
                continue
            distance = edit_distance(expected, heard)
            limit = max(len(expected), len(heard)) * SUBSTITUTION_MAX_RATIO
            if distance < limit and (best_distance is None or distance < best_distance):
                best_distance = distance
                best_match = heard
        if best_match is not None:
            substitutions.append({"expected": expected, "heard": best_match, "distance": best_distance})
            used.add(best_match)
        else:
            substitutions.append({"expected": expected, "heard": DROPPED, "distance": len(expected)})
    return substitutions


def analyze_accent(expected_text: str, recognized_text: str) -> AccentReport | None:
    """
    口音分析

    Args:
        expected_text: 参考文本
        recognized_text: 识别文本

    Returns:
        AccentReport；参考文本或识别文本为空时返回 None
    """
    expected_words = normalize(expected_text)
    recognized_words = normalize(recognized_text)
    if not expected_words or not recognized_words:
        return None

    recognized_set = set(recognized_words)
    expected_set = set(expected_words)
    missed = [w for w in expected_words if w not in recognized_set]
    extra = [w for w in recognized_words if w not in expected_set]

    if not missed:
        return AccentReport(perfect=True)

    substitutions = find_substitutions(missed, extra)
    rules = load_rules()

    accent_scores: dict[str, float] = {}
    matches: list[dict[str, Any]] = []
    for accent in rules["accents"]:
        score = 0.0
        for sub in substitutions:
            for rule in accent.rules:
                if matches_rule(rule, sub["expected"], sub["heard"]):
                    score += 1
                    matches.append({"accent": accent.id, "rule": rule, **sub})
        # 没有明确替换的漏读词也按 pattern 给部分分
        for word in missed:
            for rule in accent.rules:
                if _search(rule, word):
                    score += MISSED_PATTERN_WEIGHT
        if score > 0:
            accent_scores[accent.id] = round(score, 1)

    ranked = sorted(accent_scores.items(), key=lambda item: item[1], reverse=True)
    detected = ranked[0][0] if ranked else None
    top_score = ranked[0][1] if ranked else 0.0
    confidence = min(MAX_CONFIDENCE, round_half_up(top_score / len(missed) * 60 + 20))

    detected_matches = [m for m in matches if m["accent"] == detected]

    sound_counts: dict[str, int] = {}
    for m in detected_matches:
        sound_counts[m["rule"].sound] = sound_counts.get(m["rule"].sound, 0) + 1
    problem_sounds = [
        {"sound": sound, "count": count}
        for sound, count in sorted(sound_counts.items(), key=lambda item: item[1], reverse=True)
    ]

    problem_words = []
    for sub in substitutions:
        match = next((m for m in detected_matches if m["expected"] == sub["expected"]), None)
        problem_words.append({
            "expected": sub["expected"],
            "heard": sub["heard"],
            "sound": match["rule"].sound if match else "unknown",
            "description": match["rule"].description if match else "Pronunciation mismatch",
            "tip": match["rule"].tip if match else "Practice this word with native audio.",
        })

    drills = rules["drills"]
    tips = []
    seen_sounds: set[str] = set()
    for m in detected_matches:
        rule = m["rule"]
        if rule.sound in seen_sounds:
            continue
        seen_sounds.add(rule.sound)
        tips.append({
            "sound": rule.sound,
            "tip": rule.tip,
            "examples": rule.examples,
            "drills": drills.get(rule.sound, []),
        })

    accent_name = None
    if detected:
        accent_name = next(a.name for a in rules["accents"] if a.id == detected)
        logger.info(f"口音分析: {accent_name} (置信度 {confidence}%), 漏读 {len(missed)} 词")
    else:
        logger.info(f"口音分析: 未识别到口音模式, 漏读 {len(missed)} 词")

    return AccentReport(
        detected_accent=detected,
        accent_name=accent_name,
        confidence=confidence,
        accent_scores=accent_scores,
        problem_words=problem_words,
        problem_sounds=problem_sounds,
        tips=tips,
        missed=missed,
        perfect=False,
    )
