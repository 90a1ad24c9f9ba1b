"""Rank thresholds and computation.

These values must match the mobile client's rank badges.
"""

from __future__ import annotations

RANK_THRESHOLDS: list[dict] = [
    {"level": 1, "title": "Rookie", "cumulative": 0},
    {"level": 2, "title": "Adventurer", "cumulative": 50},
    {"level": 3, "title": "Veteran", "cumulative": 120},
    {"level": 4, "title": "Epic", "cumulative": 220},
    {"level": 5, "title": "Elite", "cumulative": 340},
    {"level": 6, "title": "Legend", "cumulative": 480},
]


def compute_rank(exp: int) -> dict:
    """Compute rank info from total EXP. Negative EXP counts as Rookie."""
    current = RANK_THRESHOLDS[0]
    next_rank = RANK_THRESHOLDS[1]

    for i in range(len(RANK_THRESHOLDS) - 1):
        if exp >= RANK_THRESHOLDS[i]["cumulative"]:
            current = RANK_THRESHOLDS[i]
            next_rank = RANK_THRESHOLDS[i + 1]

    if exp >= RANK_THRESHOLDS[-1]["cumulative"]:
        current = RANK_THRESHOLDS[-1]
        next_rank = RANK_THRESHOLDS[-1]

    return {
        "level": current["level"],
        "title": current["title"],
        "exp_to_next": max(0, next_rank["cumulative"] - exp),
        "next_title": next_rank["title"],
    }


def rank_title(exp: int) -> str:
    """Rank title for an EXP total."""
    return compute_rank(exp)["title"]
