"""Timeline labels loaded from timeline.yaml."""

from dataclasses import dataclass
from pathlib import Path

import yaml

from trackpoint.tracking.status import TimelineStep


@dataclass(frozen=True)
class StepLabel:
    """Label and description shown for one timeline entry."""

    label: str
    description: str


@dataclass
class TimelineConfig:
    """Labels for the five timeline steps plus the off-timeline states."""

    steps: dict[TimelineStep, StepLabel]
    cancelled: StepLabel
    pending: StepLabel

    @classmethod
    def from_yaml(cls, yaml_path: Path) -> "TimelineConfig":
        """Load timeline labels from a YAML file."""
        with open(yaml_path) as f:
            data = yaml.safe_load(f)

        steps = {}
        for entry in data.get("steps", []):
            try:
                step = TimelineStep[entry["key"].upper()]
            except KeyError:
                raise ValueError(f"Unknown timeline step in {yaml_path}: {entry.get('key')}")
            steps[step] = StepLabel(label=entry["label"], description=entry.get("description", ""))

        expected = [s for s in TimelineStep if s is not TimelineStep.NONE]
        if sorted(steps) != expected:
            raise ValueError(f"{yaml_path} must define exactly the steps {[s.name for s in expected]}")

        return cls(
            steps=steps,
            cancelled=_banner(data, "cancelled", yaml_path),
            pending=_banner(data, "pending", yaml_path),
        )


def _banner(data: dict, key: str, yaml_path: Path) -> StepLabel:
    entry = data.get(key)
    if not isinstance(entry, dict) or "label" not in entry:
        raise ValueError(f"{yaml_path} must define a {key!r} entry with a label")
    extra = set(entry) - {"label", "description"}
    if extra:
        raise ValueError(f"Unexpected keys for {key!r} in {yaml_path}: {sorted(extra)}")
    return StepLabel(label=entry["label"], description=entry.get("description", ""))
