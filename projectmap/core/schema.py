"""Schema definitions, domains, and loaders for project and region data."""

import json
import logging
from enum import StrEnum
from pathlib import Path
from typing import Any, Optional

import pandas as pd
import pandera.pandas as pa
from pandera.typing import Series

logger = logging.getLogger(__name__)


class SchemaColumns(StrEnum):
    """Property names of a project point feature."""

    # Used to refer to the DataFrame integer index.
    DF_ID = "df_id"

    ID = "id"
    YEAR = "year"
    STATUS = "status"
    TYPE = "type"
    # Region (state) the project is located in, upper-cased.
    REGION = "state"
    TITLE = "title"
    LOCATION = "location"
    CONTRACTOR = "contractor"
    LOT = "lot"
    LONGITUDE = "longitude"
    LATITUDE = "latitude"


class RegionColumns(StrEnum):
    """Column names of the region aggregate table."""

    NAME = "name"
    TOTAL = "total"
    COMPLETED = "completed"
    ONGOING = "ongoing"
    YET_TO_MOBILIZE = "yet_to_mobilize"
    PCT_COMPLETED = "pct_completed"


# Property holding the region name in the region boundary GeoJSON.
REGION_NAME_PROPERTY = "shapeName"

# Per-technology count columns in the aggregate table carry this prefix.
TECHNOLOGY_COLUMN_PREFIX = "tech_"

YEARS = ("2019", "2020", "2021", "2022", "2023", "2024", "2025")

STATUSES = ("COMPLETED", "ONGOING", "YET TO MOBILIZE")

TYPES = (
    "GRID",
    "SOLAR STREET LIGHT",
    "SOLAR MINI GRID",
    "SOLAR HOME SYSTEM",
    "SOLAR BOREHOLE",
    "SOLAR WATER PUMP",
    "SOLAR PUMPING MACHINE",
    "SOLAR IRRIGATION PUMP",
    "INJECTION SUBSTATION",
    "TRAINING",
    "ELECTRIC VEHICLE",
    "COUNTERPART FUNDING",
    "VEHICLE PURCHASE",
    "HQRTS",
    "GRID/SOLAR STREET LIGHT",
    "GRID/SOLAR HOME SYSTEM",
    "GRID/SOLAR MINI GRID",
    "SOLAR MINI GRID/SOLAR STREET LIGHT",
    "SOLAR STREET LIGHT/SOLAR HOME SYSTEM",
)


class ProjectSchema(pa.DataFrameModel):
    id: Series[str] = pa.Field(nullable=False)
    year: Series[str] = pa.Field(nullable=True)
    # Statuses outside STATUSES are tolerated and drawn with the fallback colour.
    status: Series[str] = pa.Field(nullable=True)
    type: Series[str] = pa.Field(nullable=True)
    state: Series[str] = pa.Field(nullable=True)
    title: Series[str] = pa.Field(nullable=True)
    location: Series[str] = pa.Field(nullable=True)
    contractor: Series[str] = pa.Field(nullable=True)
    lot: Series[str] = pa.Field(nullable=True)
    longitude: Series[float] = pa.Field(nullable=False, ge=-180, le=180)
    latitude: Series[float] = pa.Field(nullable=False, ge=-90, le=90)

    class Config:
        # Source rows carry arbitrary extra columns.
        strict = False
        coerce = True


class RegionAggregateSchema(pa.DataFrameModel):
    name: Series[str] = pa.Field(nullable=False)
    total: Series[int] = pa.Field(ge=0)
    completed: Series[int] = pa.Field(ge=0)
    ongoing: Series[int] = pa.Field(ge=0)
    yet_to_mobilize: Series[int] = pa.Field(ge=0)
    pct_completed: Series[float] = pa.Field(nullable=True)

    class Config:
        strict = False
        coerce = True


required_columns = [
    SchemaColumns.ID,
    SchemaColumns.YEAR,
    SchemaColumns.STATUS,
    SchemaColumns.TYPE,
    SchemaColumns.REGION,
    SchemaColumns.TITLE,
    SchemaColumns.LOCATION,
    SchemaColumns.CONTRACTOR,
    SchemaColumns.LOT,
    SchemaColumns.LONGITUDE,
    SchemaColumns.LATITUDE,
]


def _string_or_none(value: Any) -> Optional[str]:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return None
    if isinstance(value, float) and value.is_integer():
        # Spreadsheet years come through as 2022.0
        return str(int(value))
    return str(value).strip()


def features_to_dataframe(feature_collection: dict[str, Any]) -> pd.DataFrame:
    """
    Convert a GeoJSON FeatureCollection of project points into a DataFrame conforming to ProjectSchema.

    Property names are lower-cased so spreadsheet exports (YEAR, STATUS, ...) and
    hand-written GeoJSON land on the same columns. Extra properties are preserved.
    Features without point geometry are skipped.
    """
    records = []
    skipped = 0
    for i, feature in enumerate(feature_collection.get("features", [])):
        geometry = feature.get("geometry") or {}
        coordinates = geometry.get("coordinates")
        if geometry.get("type") != "Point" or not coordinates or len(coordinates) < 2:
            skipped += 1
            continue
        properties = {
            str(key).strip().lower(): value
            for key, value in (feature.get("properties") or {}).items()
        }
        record = dict(properties)
        record[SchemaColumns.ID] = _string_or_none(
            properties.get(SchemaColumns.ID, feature.get("id", i))
        )
        for col in required_columns:
            if col in (SchemaColumns.ID, SchemaColumns.LONGITUDE, SchemaColumns.LATITUDE):
                continue
            record[col] = _string_or_none(properties.get(col))
        record[SchemaColumns.LONGITUDE] = float(coordinates[0])
        record[SchemaColumns.LATITUDE] = float(coordinates[1])
        records.append(record)

    if skipped:
        logger.warning(f"Skipped {skipped} features without point geometry")

    df = pd.DataFrame(records, columns=None if records else required_columns)
    for col in required_columns:
        if col not in df.columns:
            df[col] = None

    df[SchemaColumns.REGION] = df[SchemaColumns.REGION].map(
        lambda v: v.upper() if isinstance(v, str) else v
    )

    schema_df = df[required_columns].copy()
    validated_schema_df = ProjectSchema.validate(schema_df, lazy=True)

    extra_columns = [col for col in df.columns if col not in required_columns]
    if extra_columns:
        result_df = pd.concat([validated_schema_df, df[extra_columns]], axis=1)
    else:
        result_df = validated_schema_df

    # Set stable df_id index using pandas int64 index
    result_df = result_df.reset_index(drop=True)
    result_df.index.name = SchemaColumns.DF_ID
    return result_df


def load_geojson(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"GeoJSON file not found: {path}")
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if data.get("type") != "FeatureCollection":
        raise ValueError(f"Expected a FeatureCollection in {path}, got {data.get('type')!r}")
    return data


def load_project_features(path: Path) -> pd.DataFrame:
    """Load the project point GeoJSON into a validated DataFrame."""
    df = features_to_dataframe(load_geojson(path))
    logger.info(f"Loaded {len(df)} project features from {path=}")
    return df


def dataframe_to_feature(row: pd.Series) -> dict[str, Any]:
    """Turn one project row back into a GeoJSON feature, as the renderer hands them out."""
    properties = {}
    for key, value in row.items():
        if key in (SchemaColumns.LONGITUDE, SchemaColumns.LATITUDE):
            continue
        # Extra properties may hold lists or dicts, which pd.isna would map elementwise.
        properties[key] = None if pd.api.types.is_scalar(value) and pd.isna(value) else value
    return {
        "type": "Feature",
        "id": row[SchemaColumns.ID],
        "geometry": {
            "type": "Point",
            "coordinates": [row[SchemaColumns.LONGITUDE], row[SchemaColumns.LATITUDE]],
        },
        "properties": properties,
    }
