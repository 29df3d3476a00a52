"""
Z-score anomaly scoring over a numeric series.

Uses the population mean and standard deviation. A point is anomalous when
|value - mean| / std reaches the threshold. A constant series has no
outliers, so std == 0 scores every point 0.
"""
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from app.shared.core.config import get_settings


@dataclass(frozen=True)
class ScoredPoint:
    index: int
    value: float
    z_score: float
    is_anomaly: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "value": self.value,
            "z_score": self.z_score,
            "is_anomaly": self.is_anomaly,
        }


def score(series: Sequence[Any], threshold: Optional[float] = None) -> List[ScoredPoint]:
    if threshold is None:
        threshold = get_settings().ANOMALY_ZSCORE_THRESHOLD

    values = [float(v) for v in series]
    if not values:
        return []

    mean = math.fsum(values) / len(values)
    variance = math.fsum((v - mean) ** 2 for v in values) / len(values)
    std_dev = math.sqrt(variance)

    points = []
    for i, v in enumerate(values):
        z = abs(v - mean) / std_dev if std_dev > 0 else 0.0
        # Round away float noise so a boundary point lands exactly on the threshold
        z = round(z, 6)
        points.append(ScoredPoint(index=i, value=v, z_score=z, is_anomaly=std_dev > 0 and z >= threshold))
    return points


def _flag_rows(rows: List[Mapping[str, Any]], value_key: str, threshold: Optional[float]) -> List[Dict[str, Any]]:
    scored = score([row.get(value_key) or 0 for row in rows], threshold)
    return [
        {**rows[p.index], "anomaly_score": p.z_score}
        for p in scored
        if p.is_anomaly
    ]


def detect_cost_anomalies(rows: Iterable[Mapping[str, Any]], threshold: Optional[float] = None) -> List[Dict[str, Any]]:
    """Rows whose `cost` stands out from the rest of the series."""
    return _flag_rows(list(rows), "cost", threshold)


def detect_utilization_anomalies(rows: Iterable[Mapping[str, Any]], threshold: Optional[float] = None) -> List[Dict[str, Any]]:
    """Rows whose `utilization` stands out from the rest of the series."""
    return _flag_rows(list(rows), "utilization", threshold)
