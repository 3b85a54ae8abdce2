"""Unit tests for georisksurge.analysis.query_builder.

Covers:
- build_r_condition: root codes, exact codes, prefixes, invalid codes, empty definitions
- fips_mapping_cte: excluded codes left out
- QueryBuilder: table validation, missing R-types
- weekly_counts_sql: parameters, R columns, sports filter, exclusive end
- country_baseline_sql / r_baseline_sql / calmest_daily_sql shapes
"""

from __future__ import annotations

import pytest

from config.settings import RDefinition
from georisksurge.analysis.query_builder import (
    WEEKLY_R_COLUMNS,
    QueryBuilder,
    build_r_condition,
    fips_mapping_cte,
)


# ── build_r_condition ────────────────────────────────────────────────────────────

class TestBuildRCondition:
    def test_root_codes(self):
        cond = build_r_condition(RDefinition(root_codes=["18", "19", "20"]))
        assert cond == "EventRootCode IN ('18', '19', '20')"

    def test_codes_and_prefixes_joined_with_or(self):
        cond = build_r_condition(RDefinition(event_codes=["073", "1033"], event_code_prefixes=["023"]))
        assert "EventCode IN ('073', '1033')" in cond
        assert "STARTS_WITH(CAST(EventCode AS STRING), '023')" in cond
        assert " OR " in cond

    def test_invalid_codes_dropped(self):
        cond = build_r_condition(RDefinition(root_codes=["18", "1; DROP TABLE x", "abc"]))
        assert cond == "EventRootCode IN ('18')"
        assert "DROP" not in cond

    def test_empty_definition_is_false(self):
        assert build_r_condition(RDefinition()) == "FALSE"


class TestFipsMappingCte:
    def test_excluded_codes_left_out(self):
        cte = fips_mapping_cte()
        assert "SELECT 'UK' AS fips, 'GB' AS iso2" in cte
        assert "'AY' AS fips" not in cte


# ── QueryBuilder ─────────────────────────────────────────────────────────────────

class TestQueryBuilder:
    def setup_method(self):
        self.definitions = {
            "R1": RDefinition(root_codes=["18", "19", "20"]),
            "R2": RDefinition(event_codes=["073"], event_code_prefixes=["023"]),
            "R3": RDefinition(root_codes=["14"]),
            "R4": RDefinition(event_codes=["163"], event_code_prefixes=["162"]),
        }
        self.qb = QueryBuilder(self.definitions, "gdelt-bq.gdeltv2.events")

    def test_missing_r_type_rejected(self):
        definitions = dict(self.definitions)
        del definitions["R3"]
        with pytest.raises(ValueError, match="R3"):
            QueryBuilder(definitions)

    @pytest.mark.parametrize("table", ["events", "proj.ds.t`; DROP", "a.b.c.d", ""])
    def test_invalid_table_rejected(self, table):
        with pytest.raises(ValueError):
            QueryBuilder(self.definitions, table)

    def test_weekly_counts_sql(self):
        sql = self.qb.weekly_counts_sql()
        assert "FROM `gdelt-bq.gdeltv2.events`" in sql
        assert "@start_date" in sql and "@end_date" in sql
        # End date is exclusive
        assert "SQLDATE < CAST(REPLACE(@end_date" in sql
        assert "FORMAT_DATE('%G-W%V'" in sql
        assert "COUNT(DISTINCT SQLDATE) AS days_with_data" in sql
        assert "ActionGeo_CountryCode AS country_code" in sql
        for column in WEEKLY_R_COLUMNS.values():
            assert f"AS {column}" in sql
        assert "espn\\." in sql
        assert "EventRootCode IN ('18', '19', '20')" in sql

    def test_country_baseline_sql(self):
        sql = self.qb.country_baseline_sql()
        assert "BETWEEN CAST(REPLACE(@start_date" in sql
        for column in ("avg_5y", "median_5y", "p90_5y", "days_counted"):
            assert f"AS {column}" in sql

    def test_r_baseline_sql_zero_fills_grid(self):
        sql = self.qb.r_baseline_sql()
        assert "GENERATE_DATE_ARRAY(DATE(@start_date), DATE(@end_date))" in sql
        assert "COALESCE(x.daily_count, 0)" in sql
        assert "SELECT DISTINCT iso2 FROM fips_to_iso2" in sql
        for r in ("R1", "R2", "R3", "R4"):
            assert f"'{r}' AS r_type" in sql

    def test_calmest_daily_sql(self):
        sql = self.qb.calmest_daily_sql()
        assert "COUNT(*) AS events" in sql
        for col in ("r1", "r2", "r3", "r4"):
            assert f"AS {col}" in sql

    def test_uses_loaded_definitions(self, r_definitions):
        sql = QueryBuilder(r_definitions).weekly_counts_sql()
        assert "'1623'" in sql
        assert "STARTS_WITH(CAST(EventCode AS STRING), '162')" in sql
