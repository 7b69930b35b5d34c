"""Load the rule catalog from a YAML file."""

from pathlib import Path
import yaml

from rule_engine.rules import RuleCatalog

DEFAULT_RULES_PATH = Path(__file__).resolve().parent / "thresholds.yml"


def load_catalog(path: str | Path = DEFAULT_RULES_PATH) -> RuleCatalog:
    """Parse *path* and return a RuleCatalog.

    Expected shape::

        thresholds:
          highway: 4
          residential: 1
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Rule file not found: {path}")

    with open(path) as f:
        definition = yaml.safe_load(f)

    thresholds = _validate(path, definition)
    return RuleCatalog(thresholds)


def _validate(path: Path, definition) -> dict[str, int]:
    if not isinstance(definition, dict) or "thresholds" not in definition:
        raise ValueError(f"{path.name}: missing required field 'thresholds'")

    thresholds = definition["thresholds"]
    if not isinstance(thresholds, dict) or not thresholds:
        raise ValueError(f"{path.name}: 'thresholds' must be a non-empty mapping")

    for category, threshold in thresholds.items():
        if not isinstance(category, str):
            raise ValueError(
                f"{path.name}: location type {category!r} must be a string"
            )
        if isinstance(threshold, bool) or not isinstance(threshold, int) \
                or threshold < 1:
            raise ValueError(
                f"{path.name}: threshold for '{category}' must be a positive "
                f"integer, got {threshold!r}"
            )
    return thresholds
