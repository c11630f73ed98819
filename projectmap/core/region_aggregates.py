"""
Per-region precomputed statistics and the side panel built from them.

The aggregate table and the boundary geometry come from different sources, so a
region on the map may have no record here. A miss is an ordinary outcome: lookup()
returns None and the panel renders a "no data" placeholder.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import pandas as pd

from projectmap.core.backend_frontend_shared_schema import (
    RegionPanel,
    ShareEntry,
    ViewMode,
)
from projectmap.core.schema import (
    REGION_NAME_PROPERTY,
    TECHNOLOGY_COLUMN_PREFIX,
    RegionAggregateSchema,
    RegionColumns as R,
)

logger = logging.getLogger(__name__)

FCT_FULL_NAME = "ABUJA FEDERAL CAPITAL TERRITORY"
FCT_SHORT_NAME = "FCT"


def normalize_region_name(name: str) -> str:
    return str(name).strip().upper()


def display_region_name(name: str) -> str:
    return normalize_region_name(name).replace(FCT_FULL_NAME, FCT_SHORT_NAME)


def safe_percentage(part: float, total: float) -> float:
    """Percentage of part in total, rounded to one decimal; 0 when total is not positive."""
    if total <= 0:
        return 0.0
    return round(100.0 * part / total, 1)


@dataclass(frozen=True)
class RegionAggregateRecord:
    name: str
    total: int
    completed: int
    ongoing: int
    yet_to_mobilize: int
    pct_completed: Optional[float]
    technology_counts: dict[str, int] = field(default_factory=dict)

    @property
    def is_consistent(self) -> bool:
        return self.completed + self.ongoing + self.yet_to_mobilize == self.total


def technology_shares(record: RegionAggregateRecord) -> list[ShareEntry]:
    """Per-technology counts and percentages for the pie breakdown, largest first."""
    entries = [
        ShareEntry(
            label=label,
            count=count,
            percentage=safe_percentage(count, record.total),
        )
        for label, count in record.technology_counts.items()
    ]
    return sorted(entries, key=lambda e: (-e.count, e.label))


def status_shares(record: RegionAggregateRecord) -> list[ShareEntry]:
    counts = (
        ("COMPLETED", record.completed),
        ("ONGOING", record.ongoing),
        ("YET TO MOBILIZE", record.yet_to_mobilize),
    )
    return [
        ShareEntry(label=label, count=count, percentage=safe_percentage(count, record.total))
        for label, count in counts
    ]


class RegionAggregateStore:
    """Read-only lookup of aggregate records keyed by normalized region name."""

    def __init__(self, records: Optional[list[RegionAggregateRecord]] = None) -> None:
        self._records: dict[str, RegionAggregateRecord] = {}
        for record in records or []:
            key = normalize_region_name(record.name)
            if key in self._records:
                logger.warning(f"Duplicate aggregate record for {key=}, keeping the first")
                continue
            self._records[key] = record

    def lookup(self, region_name: Optional[str]) -> Optional[RegionAggregateRecord]:
        if not region_name:
            return None
        record = self._records.get(normalize_region_name(region_name))
        if record is None:
            logger.debug(f"No aggregate record for {region_name=}")
        return record

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, region_name: object) -> bool:
        return isinstance(region_name, str) and normalize_region_name(region_name) in self._records

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame) -> "RegionAggregateStore":
        df = df.rename(columns={c: str(c).strip().lower() for c in df.columns})
        if R.PCT_COMPLETED not in df.columns:
            df[R.PCT_COMPLETED] = None
        validated = RegionAggregateSchema.validate(df, lazy=True)
        technology_columns = [
            c for c in validated.columns if c.startswith(TECHNOLOGY_COLUMN_PREFIX)
        ]
        records = []
        for _, row in validated.iterrows():
            technology_counts = {
                c[len(TECHNOLOGY_COLUMN_PREFIX) :].replace("_", " ").upper(): int(row[c])
                for c in technology_columns
                if pd.notna(row[c])
            }
            pct = row[R.PCT_COMPLETED]
            records.append(
                RegionAggregateRecord(
                    name=normalize_region_name(row[R.NAME]),
                    total=int(row[R.TOTAL]),
                    completed=int(row[R.COMPLETED]),
                    ongoing=int(row[R.ONGOING]),
                    yet_to_mobilize=int(row[R.YET_TO_MOBILIZE]),
                    pct_completed=None if pd.isna(pct) else float(pct),
                    technology_counts=technology_counts,
                )
            )
        store = cls(records)
        inconsistent = [r.name for r in store._records.values() if not r.is_consistent]
        if inconsistent:
            logger.warning(
                f"Status counts do not add up to total for {len(inconsistent)} regions: {inconsistent}"
            )
        return store


def load_region_aggregates(path: Path) -> RegionAggregateStore:
    """
    Load the aggregate table from JSON or CSV.

    JSON may be a list of records or a mapping of region name to record.
    """
    if not path.exists():
        raise FileNotFoundError(f"Aggregate file not found: {path}")

    if path.suffix.lower() == ".csv":
        df = pd.read_csv(path)
    elif path.suffix.lower() == ".json":
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        if isinstance(data, dict):
            data = [{R.NAME: name, **values} for name, values in data.items()]
        df = pd.DataFrame(data)
    else:
        raise ValueError(f"Unsupported aggregate file type: {path.suffix}")

    store = RegionAggregateStore.from_dataframe(df)
    logger.info(f"Loaded {len(store)} region aggregate records from {path=}")
    return store


def enrich_region_features(
    features: list[dict[str, Any]], store: RegionAggregateStore
) -> list[dict[str, Any]]:
    """Copy boundary features, adding the aggregate total the coverage fill keys on."""
    enriched = []
    for feature in features:
        properties = dict(feature.get("properties") or {})
        record = store.lookup(properties.get(REGION_NAME_PROPERTY))
        properties[R.TOTAL] = record.total if record else 0
        enriched.append({**feature, "properties": properties})
    return enriched


def build_region_panel(
    region: str, record: Optional[RegionAggregateRecord], view_mode: ViewMode
) -> RegionPanel:
    """Side panel content for the region under the given view mode."""
    region = normalize_region_name(region)
    if record is None:
        return RegionPanel(
            region=region,
            display_name=display_region_name(region),
            view_mode=view_mode,
            has_data=False,
        )

    panel = RegionPanel(
        region=region,
        display_name=display_region_name(region),
        view_mode=view_mode,
        has_data=True,
        total=record.total,
        completed=record.completed,
        ongoing=record.ongoing,
        yet_to_mobilize=record.yet_to_mobilize,
        pct_completed=record.pct_completed,
    )
    if view_mode == ViewMode.PERFORMANCE:
        panel.breakdown = status_shares(record)
    elif view_mode == ViewMode.TECHNOLOGY:
        panel.breakdown = technology_shares(record)
    return panel
