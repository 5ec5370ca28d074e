"""
Decision Tree Navigator
=======================

PURPOSE:
    Drives the guided "answer a few questions" flow that ends in
    ``/api/decision-tree/generate``. Given the answers so far it returns
    the next question and the user's progress, or reports completion.

ORDER:
    1. ``root``: what the app does (its answer is the app purpose).
    2. ``platform``: web / mobile / desktop / pwa (the app type).
    3. The questions of ``paths[purpose][type]`` in listed order, skipping
       answered ones and any whose ``dependsOn`` ids are not all answered.

The question data lives in decision_tree.yaml beside this module.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

import yaml

from mindforge.core.errors import InvalidInputError, MindforgeError

logger = logging.getLogger(__name__)

__all__ = [
    "DecisionTree",
    "NextStep",
    "UnsupportedDecisionPath",
    "decision_tree",
]

DEFAULT_PATH = os.path.join(os.path.dirname(__file__), "decision_tree.yaml")

# Root and platform are asked before the path (and its length) is known
PROVISIONAL_TOTAL_STEPS = 12
ROOT_PERCENTAGE = 0
PLATFORM_PERCENTAGE = 16
LEADING_QUESTIONS = 2


class UnsupportedDecisionPath(MindforgeError):
    def __init__(self, app_purpose: str, app_type: str, supported: Dict[str, List[str]]) -> None:
        super().__init__(
            "MF-API-003",
            detail=f"no decision path for {app_purpose} + {app_type}",
            payload={"appPurpose": app_purpose, "appType": app_type, "supported": supported},
        )


@dataclass(frozen=True)
class NextStep:
    completed: bool
    current_step: int
    total_steps: int
    percentage: int
    question: Optional[Dict[str, Any]] = None

    def to_dict(self) -> dict:
        body: Dict[str, Any] = {
            "completed": self.completed,
            "progress": {
                "currentStep": self.current_step,
                "totalSteps": self.total_steps,
                "percentage": self.percentage,
            },
        }
        if self.question is not None:
            body["question"] = self.question
        return body


def _percentage(step: int, total: int) -> int:
    # Half-up, not banker's rounding
    return int(step * 100 / total + 0.5)


class DecisionTree:
    def __init__(self, path: str = DEFAULT_PATH) -> None:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
        self.root: Dict[str, Any] = data["root"]
        self.platform: Dict[str, Any] = data["platform"]
        self.paths: Dict[str, Dict[str, List[Dict[str, Any]]]] = data.get("paths") or {}

    def supported(self) -> Dict[str, List[str]]:
        return {purpose: sorted(types) for purpose, types in self.paths.items()}

    def path_for(self, app_purpose: str, app_type: str) -> List[Dict[str, Any]]:
        questions = self.paths.get(app_purpose, {}).get(app_type)
        if not questions:
            raise UnsupportedDecisionPath(app_purpose, app_type, self.supported())
        return questions

    def next_step(
        self,
        decisions: Optional[Mapping[str, Any]],
        app_purpose: Optional[str] = None,
        app_type: Optional[str] = None,
    ) -> NextStep:
        decisions = decisions or {}
        if not decisions:
            return NextStep(False, 1, PROVISIONAL_TOTAL_STEPS, ROOT_PERCENTAGE, self.root)
        if "root" in decisions and "platform" not in decisions:
            return NextStep(False, 2, PROVISIONAL_TOTAL_STEPS, PLATFORM_PERCENTAGE, self.platform)

        app_purpose = app_purpose or decisions.get("root")
        app_type = app_type or decisions.get("platform")
        if not app_purpose or not app_type:
            raise InvalidInputError("App purpose and type required", field="appPurpose")
        app_purpose, app_type = str(app_purpose), str(app_type)

        questions = self.path_for(app_purpose, app_type)
        total = len(questions) + LEADING_QUESTIONS
        answered = set(decisions)

        for node in questions:
            if node["id"] in answered:
                continue
            if all(dep in answered for dep in node.get("dependsOn") or ()):
                step = len(answered) + 1
                return NextStep(False, step, total, _percentage(step, total), node)

        logger.info("decision_tree_completed", extra={"app_purpose": app_purpose, "app_type": app_type})
        return NextStep(True, total, total, 100)


# Module-level singleton
decision_tree = DecisionTree()
