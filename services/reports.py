"""
Admin reporting over completed orders.

Phase durations follow the same rules as the per-order performance
metrics: shopping ends at checkout when it was recorded, otherwise when
delivery started.
"""
from pathlib import Path

import pandas as pd

from db import TABLES, get_connection

PHASE_COLUMNS = ["wait_minutes", "shopping_minutes", "delivery_minutes", "total_minutes"]

PHASE_QUERY = """
    SELECT o.order_id, o.store_id, s.name AS store_name, s.village, o.driver_id,
           o.created_at, o.accepted_at, o.shopping_started_at,
           o.shopping_completed_at, o.delivery_started_at, o.delivered_at
    FROM orders o
    LEFT JOIN stores s ON o.store_id = s.store_id
    WHERE o.status = 'delivered'
"""


def _minutes(start: pd.Series, end: pd.Series) -> pd.Series:
    return (end - start).dt.total_seconds() / 60


def phase_durations() -> pd.DataFrame:
    """One row per delivered order with minutes spent in each phase."""
    conn = get_connection()
    try:
        df = pd.read_sql(PHASE_QUERY, conn)
    finally:
        conn.close()

    stamp_columns = ["created_at", "accepted_at", "shopping_started_at",
                     "shopping_completed_at", "delivery_started_at", "delivered_at"]
    for column in stamp_columns:
        df[column] = pd.to_datetime(df[column], format="ISO8601")

    shopping_end = df["shopping_completed_at"].fillna(df["delivery_started_at"])
    df["wait_minutes"] = _minutes(df["created_at"], df["accepted_at"])
    df["shopping_minutes"] = _minutes(df["shopping_started_at"], shopping_end)
    df["delivery_minutes"] = _minutes(df["delivery_started_at"], df["delivered_at"])
    df["total_minutes"] = _minutes(df["accepted_at"], df["delivered_at"])
    return df


def phase_summary(group_by: str | None = None) -> list[dict]:
    """Mean phase durations, overall or per `store_name` / `village` / `driver_id`."""
    df = phase_durations()
    if df.empty:
        return []
    if group_by is None:
        summary = df[PHASE_COLUMNS].mean().round(1).to_frame().T
        summary.insert(0, "orders", len(df))
    else:
        grouped = df.groupby(group_by)
        summary = grouped[PHASE_COLUMNS].mean().round(1)
        summary.insert(0, "orders", grouped.size())
        summary = summary.reset_index().sort_values("total_minutes")
    # NaN is not valid JSON
    summary = summary.astype(object).where(summary.notna(), None)
    return summary.to_dict(orient="records")


def export_tables(export_dir: Path) -> dict[str, int]:
    """Write every table plus the phase report to CSV. Returns rows written per file."""
    export_dir.mkdir(parents=True, exist_ok=True)
    written = {}
    conn = get_connection()
    try:
        for table in TABLES:
            df = pd.read_sql_query(f"SELECT * FROM {table}", conn)
            df.to_csv(export_dir / f"{table}.csv", index=False)
            written[table] = len(df)
    finally:
        conn.close()

    report = phase_durations()
    report.to_csv(export_dir / "phase_durations.csv", index=False)
    written["phase_durations"] = len(report)
    return written
