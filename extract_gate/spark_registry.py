"""extract_gate.spark_registry

Spark SQL / Delta Lake implementation of `ExtractRegistry`.

Tables (names in `config.py`):
- `extract_load_log`: one row per completed load (loadname, extrdt, loaddt,
  loaded_by, numrec). `max(extrdt)` per loadname is the watermark the gate
  validates against.
- `extract_holidays`: recorded holiday dates.
- `extract_report_months`: reporting calendar (rptmonth, startdt, enddt).
- `extract_gate_run_log`: one summary row per gate run.

Databricks assumptions:
- The caller passes the Spark session in; this module never reaches for the
  runtime globals itself.
- Spark session timezone is pinned to UTC by the orchestrator, so DATE and
  TIMESTAMP literals below are UTC.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict, Optional, Sequence, Tuple

import pandas as pd
from delta.tables import DeltaTable
from pyspark.sql import SparkSession
from pyspark.sql.types import DateType, DoubleType, LongType, StringType, StructField, StructType, TimestampType

from .calendar_rules import parse
from .config import (
    DAILY_EXTRACTS,
    GATE_RUN_LOG_SCHEMA,
    GATE_RUN_LOG_TABLE_NAME,
    HOLIDAY_LOADED_BY,
    HOLIDAY_TABLE_NAME,
    LOAD_LOG_TABLE_NAME,
    LOAD_LOG_TABLE_SCHEMA,
    PY_DATETIME_FORMAT,
    REPORT_MONTH_TABLE_NAME,
    log_message,
)
from .errors import RegistryUnavailableError
from .models import DateForm

LOAD_LOG_SPARK_SCHEMA = StructType(
    [
        StructField("loadname", StringType(), False),
        StructField("extrdt", DateType(), False),
        StructField("loaddt", TimestampType(), False),
        StructField("loaded_by", StringType(), True),
        StructField("numrec", LongType(), True),
    ]
)

GATE_RUN_LOG_SPARK_SCHEMA = StructType(
    [
        StructField("run_id", StringType(), True),
        StructField("pipeline", StringType(), True),
        StructField("run_date", DateType(), True),
        StructField("run_timestamp_utc", TimestampType(), True),
        StructField("environment", StringType(), True),
        StructField("decision", StringType(), True),
        StructField("final_state", StringType(), True),
        StructField("reasons", StringType(), True),
        StructField("warnings", StringType(), True),
        StructField("outcomes", StringType(), True),
        StructField("load_stats", StringType(), True),
        StructField("error_message", StringType(), True),
        StructField("duration_seconds", DoubleType(), True),
    ]
)


def _to_date(value: Any) -> Optional[date]:
    """Normalize a registry value (DATE, TIMESTAMP or MM/DD/YYYY string) to a date."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return parse(str(value).strip(), DateForm.REGISTRY)


def _sql_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


class SparkExtractRegistry:
    """Extract registry backed by Delta tables.

    Args:
        spark: Active Spark session.
        loaded_by: Identity written to `loaded_by` for loads recorded by this run.
        holiday_extracts: Extract names that receive a holiday marker row.
    """

    def __init__(
        self,
        spark: SparkSession,
        loaded_by: str = "extract_gate",
        holiday_extracts: Sequence[str] = tuple(spec.name for spec in DAILY_EXTRACTS),
    ) -> None:
        self.spark = spark
        self.loaded_by = loaded_by
        self.holiday_extracts = tuple(holiday_extracts)

    def _scalar(self, operation: str, query: str) -> Any:
        try:
            rows = self.spark.sql(query).collect()
        except Exception as e:
            log_message(f"Registry query failed ({operation}): {e}", level="ERROR", depth=2)
            raise RegistryUnavailableError(operation, str(e)) from e
        return rows[0][0] if rows else None

    def initialize_registry_tables(self) -> None:
        """Create the registry tables if they do not already exist."""
        log_message("Initializing registry tables...")
        statements = {
            LOAD_LOG_TABLE_NAME: f"CREATE TABLE IF NOT EXISTS {LOAD_LOG_TABLE_NAME} ({LOAD_LOG_TABLE_SCHEMA})",
            HOLIDAY_TABLE_NAME: f"CREATE TABLE IF NOT EXISTS {HOLIDAY_TABLE_NAME} (holiday_date DATE, description STRING)",
            REPORT_MONTH_TABLE_NAME: (
                f"CREATE TABLE IF NOT EXISTS {REPORT_MONTH_TABLE_NAME} (rptmonth STRING, startdt DATE, enddt DATE)"
            ),
            GATE_RUN_LOG_TABLE_NAME: f"CREATE TABLE IF NOT EXISTS {GATE_RUN_LOG_TABLE_NAME} ({GATE_RUN_LOG_SCHEMA})",
        }
        for table_name, statement in statements.items():
            self.spark.sql(statement)
            log_message(f"Table '{table_name}' is ready.", level="DEBUG", depth=1)

    def max_extract_date(self, name: str) -> Optional[date]:
        query = f"SELECT max(extrdt) FROM {LOAD_LOG_TABLE_NAME} WHERE loadname = '{_sql_string(name)}'"
        result = _to_date(self._scalar("max_extract_date", query))
        log_message(f"Last {name} extract date loaded: {result}", level="DEBUG", depth=2)
        return result

    def find_holiday(self, day: date) -> Optional[date]:
        query = f"SELECT max(holiday_date) FROM {HOLIDAY_TABLE_NAME} WHERE holiday_date = DATE'{day.isoformat()}'"
        return _to_date(self._scalar("find_holiday", query))

    def record_holiday(self, holiday_date: date) -> None:
        """Merge one marker row per holiday extract into the load log.

        The merge key is (loadname, extrdt), so re-running a holiday skip does
        not duplicate markers.
        """
        loaded_at = datetime.now(timezone.utc).replace(tzinfo=None)
        rows = [(name, holiday_date, loaded_at, HOLIDAY_LOADED_BY, 0) for name in self.holiday_extracts]
        try:
            markers = self.spark.createDataFrame(rows, schema=LOAD_LOG_SPARK_SCHEMA)
            (
                DeltaTable.forName(self.spark, LOAD_LOG_TABLE_NAME)
                .alias("target")
                .merge(markers.alias("source"), "target.loadname = source.loadname AND target.extrdt = source.extrdt")
                .whenNotMatchedInsertAll()
                .execute()
            )
        except Exception as e:
            log_message(f"Failed to record holiday markers for {holiday_date}: {e}", level="ERROR", depth=2)
            raise RegistryUnavailableError("record_holiday", str(e)) from e
        log_message(f"Holiday markers recorded for {len(rows)} extracts ({holiday_date}).", depth=2)

    def report_month_for(self, day: date) -> str:
        query = (
            f"SELECT max(rptmonth) FROM {REPORT_MONTH_TABLE_NAME} "
            f"WHERE DATE'{day.isoformat()}' BETWEEN startdt AND enddt"
        )
        result = self._scalar("report_month_for", query)
        if result is None:
            raise RegistryUnavailableError("report_month_for", f"no report month covers {day.isoformat()}")
        return str(result)

    def month_bounds(self, report_month: str) -> Tuple[date, date]:
        query = f"SELECT startdt, enddt FROM {REPORT_MONTH_TABLE_NAME} WHERE rptmonth = '{_sql_string(report_month)}'"
        try:
            rows = self.spark.sql(query).collect()
        except Exception as e:
            raise RegistryUnavailableError("month_bounds", str(e)) from e
        if not rows:
            raise RegistryUnavailableError("month_bounds", f"unknown report month {report_month}")
        return _to_date(rows[0][0]), _to_date(rows[0][1])

    def record_load(self, name: str, extract_date: date, record_count: int) -> None:
        loaded_at = datetime.now(timezone.utc).strftime(PY_DATETIME_FORMAT)
        try:
            self.spark.sql(
                f"""
                INSERT INTO {LOAD_LOG_TABLE_NAME} (loadname, extrdt, loaddt, loaded_by, numrec)
                VALUES ('{_sql_string(name)}', DATE'{extract_date.isoformat()}', TIMESTAMP'{loaded_at}',
                        '{_sql_string(self.loaded_by)}', {int(record_count)})
            """
            )
            log_message(f"Load log updated for {name} ({extract_date}, {record_count:,} records).", depth=2)
        except Exception as e:
            log_message(f"Failed to update load log for {name}. Error: {e}", level="ERROR", depth=2)

    def loads_recorded_on(self, day: date) -> pd.DataFrame:
        query = f"""
            SELECT loadname, extrdt, loaddt, loaded_by, numrec
            FROM {LOAD_LOG_TABLE_NAME}
            WHERE to_date(loaddt) = DATE'{day.isoformat()}'
            ORDER BY loaddt
        """
        try:
            return self.spark.sql(query).toPandas()
        except Exception as e:
            raise RegistryUnavailableError("loads_recorded_on", str(e)) from e

    def record_gate_run(self, row: Dict[str, Any]) -> None:
        try:
            self.spark.createDataFrame([row], schema=GATE_RUN_LOG_SPARK_SCHEMA).write.insertInto(GATE_RUN_LOG_TABLE_NAME)
        except Exception as e:
            log_message(f"Failed to insert gate run log row: {e}", level="ERROR", depth=1)
