"""Enumerated filter dimensions.

Declaration order is the fixed display order used by the filter panel and by
every option projection.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Tuple, Type, TypeVar

from kpi_core.errors import InvalidSelectionError

E = TypeVar("E", bound="Dimension")


class Dimension(str, Enum):
    @classmethod
    def parse(cls: Type[E], value: object) -> E:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip())
        except ValueError:
            allowed = ", ".join(m.value for m in cls)
            raise InvalidSelectionError(f"Invalid {cls.__name__.lower()}: {value!r} (expected one of {allowed})") from None

    @classmethod
    def parse_many(cls: Type[E], values: Iterable[object] | None) -> Tuple[E, ...]:
        """Parse and deduplicate, keeping first-seen order."""
        if not values:
            return ()
        if isinstance(values, (str, Enum)):
            values = [values]
        out: list = []
        for v in values:
            member = cls.parse(v)
            if member not in out:
                out.append(member)
        return tuple(out)

    @classmethod
    def ordered(cls: Type[E], values: Iterable[E]) -> Tuple[E, ...]:
        present = set(values)
        return tuple(m for m in cls if m in present)

    def __str__(self) -> str:
        return self.value


class Technology(Dimension):
    G2 = "2G"
    G3 = "3G"
    G4 = "4G"
    G5 = "5G"
    ORAN = "O-RAN"


class Vendor(Dimension):
    HUAWEI = "Huawei"
    ERICSSON = "Ericsson"
    NOKIA = "Nokia"
    ZTE = "ZTE"
    ORAN = "O-RAN"


class Domain(Dimension):
    RAN = "RAN"
    ORAN = "O-RAN"
    TRANSPORT = "Transport"
    CORE = "Core"


class Category(Dimension):
    ACCESSIBILITY = "Accessibility"
    THROUGHPUT = "Throughput"
    LATENCY = "Latency"
    RELIABILITY = "Reliability"
    QUALITY = "Quality"
    TRAFFIC = "Traffic"


class Scope(Dimension):
    NETWORK = "Network"
    REGION = "Region"
    CLUSTER = "Cluster"
    SITE = "Site"
    NODE = "Node"
    CELL = "Cell"
    INTERFACE = "Interface"

    @property
    def depth(self) -> int:
        return list(Scope).index(self)

    def coarser(self) -> Tuple["Scope", ...]:
        """Levels above this one, nearest first."""
        levels = list(Scope)[: self.depth]
        return tuple(reversed(levels))

    def finer(self) -> Tuple["Scope", ...]:
        return tuple(list(Scope)[self.depth + 1 :])


class Granularity(Dimension):
    HOUR = "1H"
    DAY = "1D"
    WEEK = "1W"
    MONTH = "1M"

    @property
    def rank(self) -> int:
        return list(Granularity).index(self)


class Direction(Dimension):
    HIGHER_IS_BETTER = "higher-is-better"
    LOWER_IS_BETTER = "lower-is-better"
