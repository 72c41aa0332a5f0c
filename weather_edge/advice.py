"""
Advice text rules.

- normalize_advice: length budget shared by model output and fallback rules
- split_completion_text: turns a free-form model reply into candidate items
- fallback_advice: deterministic advice from weather thresholds
"""

from __future__ import annotations

import re
from typing import Iterable, List

from .schemas import WeatherReading

MAX_ITEM_CHARS = 30
MAX_TOTAL_CHARS = 50
SEPARATOR = "；"

COLD_ADVICE = "低温防寒，穿羽绒服+围巾"
HEAT_ADVICE = "高温防暑，避正午外出防晒"
RAIN_ADVICE = "降水较大，通勤记得带伞"
WIND_ADVICE = "风力偏大，注意防风与坠物"
STABLE_ADVICE = "天气平稳，合理安排出行"

_SPLIT_RE = re.compile(r"\n|；|;|。")


def normalize_advice(
    items: Iterable[str],
    max_item: int = MAX_ITEM_CHARS,
    max_total: int = MAX_TOTAL_CHARS,
    sep: str = SEPARATOR,
) -> List[str]:
    """
    Truncate each item to max_item chars, then keep the longest prefix whose
    sep-joined length stays within max_total.
    """
    out: List[str] = []
    total = 0
    for item in items:
        item = item[:max_item]
        added = len(item) + (len(sep) if out else 0)
        if total + added > max_total:
            break
        out.append(item)
        total += added
    return out


def split_completion_text(text: str) -> List[str]:
    """Split on newlines and (full/half-width) semicolons or full stops."""
    parts = (p.strip() for p in _SPLIT_RE.split(text))
    return [p for p in parts if p]


def fallback_advice(reading: WeatherReading) -> List[str]:
    """Rule-based advice; rules are checked in a fixed order."""
    tips: List[str] = []
    if reading.temp < 5:
        tips.append(COLD_ADVICE)
    if reading.temp > 30:
        tips.append(HEAT_ADVICE)
    if reading.precip_probability > 60:
        tips.append(RAIN_ADVICE)
    if reading.wind_scale > 5:
        tips.append(WIND_ADVICE)
    if not tips:
        tips.append(STABLE_ADVICE)
    return normalize_advice(tips)
