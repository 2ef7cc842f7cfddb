"""Tests for the daily metrics repository and its derived figures."""
import math

import pytest

from db import get_db
from db.repositories import metrics as metrics_repo

WS = "ws-test"


# ---------------------------------------------------------------------------
# Store operations
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_upsert_keeps_created_at_and_refreshes_updated_at(store):
    row = metrics_repo.empty_daily_metrics(WS, "OUTBOUND", "2026-03-04")
    row.created_at = 1_000
    row.updated_at = 1_000
    row.msg1_disparos = 30
    async with get_db() as session:
        first = await metrics_repo.upsert_daily_metrics(session, row)
    assert first.created_at == 1_000
    assert first.updated_at > 1_000

    again = metrics_repo.empty_daily_metrics(WS, "OUTBOUND", "2026-03-04")
    again.msg1_disparos = 45
    async with get_db() as session:
        second = await metrics_repo.upsert_daily_metrics(session, again)
    assert second.created_at == 1_000
    assert second.msg1_disparos == 45

    async with get_db() as session:
        stored = await metrics_repo.get_daily_metrics(session, WS, "OUTBOUND", "2026-03-04")
    assert stored.id == "ws-test:OUTBOUND:2026-03-04"
    assert stored.msg1_disparos == 45
    assert stored.created_at == 1_000


@pytest.mark.asyncio
async def test_close_and_reopen_day(store):
    async with get_db() as session:
        assert await metrics_repo.reopen_daily_metrics(session, WS, "SOCIAL", "2026-03-04") is None
        closed = await metrics_repo.close_daily_metrics(session, WS, "SOCIAL", "2026-03-04")
    assert closed.is_closed
    assert closed.msg1_disparos == 0

    async with get_db() as session:
        reopened = await metrics_repo.reopen_daily_metrics(session, WS, "SOCIAL", "2026-03-04")
    assert reopened.closed_at is None

    async with get_db() as session:
        stored = await metrics_repo.get_daily_metrics(session, WS, "SOCIAL", "2026-03-04")
    assert not stored.is_closed


@pytest.mark.asyncio
async def test_week_metrics_returns_monday_to_sunday(store):
    for date_key in ("2026-03-02", "2026-03-05"):
        async with get_db() as session:
            await metrics_repo.upsert_daily_metrics(
                session, metrics_repo.empty_daily_metrics(WS, "OUTBOUND", date_key)
            )
    async with get_db() as session:
        await metrics_repo.upsert_daily_metrics(
            session, metrics_repo.empty_daily_metrics(WS, "SOCIAL", "2026-03-03")
        )

    async with get_db() as session:
        week = await metrics_repo.get_week_metrics(session, WS, "OUTBOUND", "2026-03-07")

    assert [k for k, _ in week] == [
        "2026-03-02",
        "2026-03-03",
        "2026-03-04",
        "2026-03-05",
        "2026-03-06",
        "2026-03-07",
        "2026-03-08",
    ]
    present = [k for k, row in week if row is not None]
    assert present == ["2026-03-02", "2026-03-05"]


def test_week_date_keys_on_a_monday_starts_that_day():
    keys = metrics_repo.week_date_keys("2026-03-02")
    assert keys[0] == "2026-03-02"
    assert keys[-1] == "2026-03-08"


def test_week_date_keys_crosses_month_boundary():
    assert metrics_repo.week_date_keys("2026-03-01")[0] == "2026-02-23"


def test_date_key_validation():
    assert metrics_repo.is_valid_date_key("2026-03-04")
    assert not metrics_repo.is_valid_date_key("2026-3-4")
    assert not metrics_repo.is_valid_date_key("")
    assert metrics_repo.is_valid_date_key(metrics_repo.today_date_key())


# ---------------------------------------------------------------------------
# Derived figures
# ---------------------------------------------------------------------------


def test_pct_zero_denominator():
    assert metrics_repo.pct(5, 0) == 0.0
    assert metrics_repo.pct(1, 4) == 25.0


@pytest.mark.parametrize(
    "value,expected",
    [(3, 3), (3.9, 3), ("7", 7), (-2, 0), (None, 0), ("abc", 0), (math.nan, 0), (math.inf, 0)],
)
def test_safe_int(value, expected):
    assert metrics_repo.safe_int(value) == expected


def test_compute_rates():
    m = metrics_repo.empty_daily_metrics(WS, "OUTBOUND", "2026-03-04")
    m.msg1_disparos = 50
    m.msg1_respostas = 7
    m.msg2_disparos = 20
    m.msg2_respostas = 5
    m.cta_disparos = 12
    m.agend_novos = 3
    m.follow_enviados = 10
    m.agend_follow = 1

    rates = metrics_repo.compute_rates(m)
    assert rates.pct_msg1 == pytest.approx(14.0)
    assert rates.pct_msg2 == 25.0
    assert rates.pct_cta == 25.0
    assert rates.agend_total == 4
    assert rates.contatos_total == 60
    assert rates.pct_agend_acoes == pytest.approx(6.6667, rel=1e-4)


def test_compute_rates_without_row_is_all_zero():
    rates = metrics_repo.compute_rates(None)
    assert rates.pct_msg1 == 0.0
    assert rates.contatos_total == 0


def test_display_roundings():
    assert metrics_repo.format_pct_int(14.5) == "15%"
    assert metrics_repo.format_pct_int(14.4) == "14%"
    assert metrics_repo.format_pct2(1.6666) == "1,67%"
    assert metrics_repo.format_pct2(0) == "0,00%"


def test_sheets_row_columns():
    m = metrics_repo.empty_daily_metrics(WS, "OUTBOUND", "2026-03-04")
    m.msg1_disparos = 50
    m.msg1_respostas = 7
    m.msg2_disparos = 20
    m.msg2_respostas = 5
    m.cta_disparos = 12
    m.agend_novos = 3
    m.follow_enviados = 10
    m.follow_respostas = 2
    m.follow_cta = 1
    m.agend_follow = 1

    row = metrics_repo.sheets_row(m)
    assert row.endswith("\n")
    columns = row.rstrip("\n").split("\t")
    assert columns == [
        "quarta",
        "50",
        "7",
        "14%",
        "20",
        "25%",
        "12",
        "3",
        "25,00%",
        "10",
        "2",
        "1",
        "1",
        "4",
        "6,67%",
        "60",
    ]
