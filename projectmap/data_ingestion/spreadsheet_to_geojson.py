"""CLI program for converting a project spreadsheet into a point GeoJSON FeatureCollection."""

import datetime
import json
import logging
from pathlib import Path
from typing import Any, Optional

import pandas as pd
import typer

logger = logging.getLogger(__name__)

LATITUDE_COLUMN = "LATITUDE"
LONGITUDE_COLUMN = "LONGITUDE"


def parse_coordinate(value: Any) -> Optional[float]:
    """
    Parse a coordinate cell.

    Accepts numbers and numeric strings that use a comma as the decimal separator
    ("6,5244"). Blank, missing and unparseable cells give None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return None if pd.isna(value) else float(value)
    text = str(value).strip().replace(",", ".")
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _json_value(value: Any) -> Any:
    if isinstance(value, (list, dict)):
        return value
    if pd.isna(value):
        return None
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    if hasattr(value, "item"):  # numpy scalar types
        return value.item()
    return value


def rows_to_feature_collection(
    df: pd.DataFrame,
    latitude_column: str = LATITUDE_COLUMN,
    longitude_column: str = LONGITUDE_COLUMN,
) -> dict[str, Any]:
    """
    Build one Point feature per row; every column is copied into the properties as is.

    Rows missing either coordinate are left out.
    """
    for col in (latitude_column, longitude_column):
        if col not in df.columns:
            raise ValueError(f"Missing coordinate column {col!r}, found {list(df.columns)}")

    features = []
    for _, row in df.iterrows():
        longitude = parse_coordinate(row[longitude_column])
        latitude = parse_coordinate(row[latitude_column])
        if longitude is None or latitude is None:
            continue
        features.append(
            {
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": [longitude, latitude]},
                "properties": {str(k): _json_value(v) for k, v in row.items()},
            }
        )

    dropped = len(df) - len(features)
    logger.info(f"Converted {len(features)} rows into features, dropped {dropped} without coordinates")
    return {"type": "FeatureCollection", "features": features}


def load_spreadsheet(path: Path) -> pd.DataFrame:
    """Read the first sheet of an Excel workbook, or a CSV file."""
    if not path.exists():
        raise FileNotFoundError(f"Spreadsheet not found: {path}")
    suffix = path.suffix.lower()
    if suffix in (".xlsx", ".xlsm", ".xls"):
        df = pd.read_excel(path, sheet_name=0, dtype=object)
    elif suffix == ".csv":
        # Keep cells as text so comma decimal separators survive until parse_coordinate.
        df = pd.read_csv(path, dtype=object)
    else:
        raise ValueError(f"Unsupported spreadsheet type: {suffix}")
    logger.info(f"Read {len(df)} rows from {path=}, columns {list(df.columns)}")
    return df


def main(
    source: Path = typer.Argument(..., help="Excel workbook or CSV file with one project per row"),
    destination: Path = typer.Argument(..., help="GeoJSON file to write"),
    latitude_column: str = typer.Option(LATITUDE_COLUMN, help="Latitude column name"),
    longitude_column: str = typer.Option(LONGITUDE_COLUMN, help="Longitude column name"),
) -> None:
    """Convert a project spreadsheet into a point GeoJSON FeatureCollection."""
    logging.basicConfig(level=logging.INFO)

    df = load_spreadsheet(source)
    feature_collection = rows_to_feature_collection(
        df, latitude_column=latitude_column, longitude_column=longitude_column
    )
    with open(destination, "w", encoding="utf-8") as f:
        json.dump(feature_collection, f, ensure_ascii=False)

    logger.info(f"Wrote {len(feature_collection['features'])} features to {destination}")


if __name__ == "__main__":
    typer.run(main)
