# Alert rules: one unsafe-event threshold per location type.
#
# Every location type shares the same trailing window; only the count that
# justifies an alert differs (a single unsafe event near homes is worth an
# operator's attention, a highway needs a cluster).  The catalog is loaded
# once at startup and never changes for the life of the process, so it is
# read from many threads without a lock.

from types import MappingProxyType
from typing import Mapping

DEFAULT_THRESHOLDS = {
    "highway": 4,
    "cityCenter": 3,
    "commercial": 2,
    "residential": 1,
}


class RuleCatalog:
    """Read-only mapping of location type -> minimum unsafe event count."""

    def __init__(self, thresholds: Mapping[str, int] | None = None):
        if thresholds is None:
            thresholds = DEFAULT_THRESHOLDS
        for category, threshold in thresholds.items():
            if isinstance(threshold, bool) or not isinstance(threshold, int) \
                    or threshold < 1:
                raise ValueError(
                    f"threshold for '{category}' must be a positive integer, "
                    f"got {threshold!r}"
                )
        self._thresholds = MappingProxyType(dict(thresholds))

    def threshold_for(self, category: str) -> int | None:
        """None means "no rule": the category is never evaluated."""
        return self._thresholds.get(category)

    def categories(self) -> list[str]:
        """Rule categories in a stable (lexicographic) order."""
        return sorted(self._thresholds)

    def __contains__(self, category) -> bool:
        return category in self._thresholds

    def __len__(self) -> int:
        return len(self._thresholds)
