"""Daily metrics repository: per-day counters, derived rates, week view.

Rows are keyed "<workspaceId>:<board>:<dateKey>" with dateKey "YYYY-MM-DD"
(local date). Percentages are derived on read and never stored.

Closing a day (closedAt) is advisory: callers are expected to stop editing
a closed day, but upsert_daily_metrics does not refuse it.
"""
import logging
import math
import re
from datetime import date, timedelta
from typing import Any, Optional

from dateutil.relativedelta import MO, relativedelta
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import METRIC_COUNTERS, DailyMetrics, now_ms
from schemas.metrics import MetricsRates

logger = logging.getLogger(__name__)

_DATE_KEY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_WEEKDAYS_PT = ("segunda", "terça", "quarta", "quinta", "sexta", "sábado", "domingo")


def make_metrics_id(workspace_id: str, board: str, date_key: str) -> str:
    return f"{workspace_id}:{board}:{date_key}"


def today_date_key() -> str:
    return date.today().isoformat()


def is_valid_date_key(date_key: str) -> bool:
    return bool(_DATE_KEY_RE.match(date_key or ""))


def _parse_date_key(date_key: str) -> date:
    y, m, d = (int(x) for x in date_key.split("-"))
    return date(y, m, d)


def empty_daily_metrics(workspace_id: str, board: str, date_key: str) -> DailyMetrics:
    """A zeroed, not-yet-persisted metrics row."""
    now = now_ms()
    return DailyMetrics(
        id=make_metrics_id(workspace_id, board, date_key),
        workspace_id=workspace_id,
        board=board,
        date_key=date_key,
        **{name: 0 for name in METRIC_COUNTERS},
        created_at=now,
        updated_at=now,
    )


async def get_daily_metrics(
    session: AsyncSession, workspace_id: str, board: str, date_key: str
) -> Optional[DailyMetrics]:
    return await session.get(DailyMetrics, make_metrics_id(workspace_id, board, date_key))


async def upsert_daily_metrics(session: AsyncSession, metrics: DailyMetrics) -> DailyMetrics:
    """Insert or overwrite a day's row, keeping the original createdAt."""
    now = now_ms()
    existing = await session.get(DailyMetrics, metrics.id)
    if existing is not None:
        metrics.created_at = existing.created_at
    elif metrics.created_at is None:
        metrics.created_at = now
    metrics.updated_at = now

    merged = await session.merge(metrics)
    await session.flush()
    return merged


async def close_daily_metrics(
    session: AsyncSession, workspace_id: str, board: str, date_key: str
) -> DailyMetrics:
    """Mark a day closed, creating an empty row first if needed."""
    row = await get_daily_metrics(session, workspace_id, board, date_key)
    if row is None:
        row = empty_daily_metrics(workspace_id, board, date_key)
        session.add(row)
    now = now_ms()
    row.closed_at = now
    row.updated_at = now
    await session.flush()
    logger.info("Closed metrics day %s", row.id)
    return row


async def reopen_daily_metrics(
    session: AsyncSession, workspace_id: str, board: str, date_key: str
) -> Optional[DailyMetrics]:
    row = await get_daily_metrics(session, workspace_id, board, date_key)
    if row is None:
        return None
    row.closed_at = None
    row.updated_at = now_ms()
    await session.flush()
    return row


# ---------------------------------------------------------------------------
# Derived figures
# ---------------------------------------------------------------------------


def safe_int(value: Any) -> int:
    """Counter sanitiser: non-numeric, negative or NaN -> 0, floats floored."""
    try:
        n = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(n) or n < 0:
        return 0
    return math.floor(n)


def pct(numer: float, denom: float) -> float:
    if not denom:
        return 0.0
    return numer / denom * 100


def compute_rates(metrics: Optional[DailyMetrics]) -> MetricsRates:
    if metrics is None:
        return MetricsRates()
    agend_total = safe_int(metrics.agend_novos) + safe_int(metrics.agend_follow)
    contatos_total = safe_int(metrics.msg1_disparos) + safe_int(metrics.follow_enviados)
    return MetricsRates(
        pct_msg1=pct(safe_int(metrics.msg1_respostas), safe_int(metrics.msg1_disparos)),
        pct_msg2=pct(safe_int(metrics.msg2_respostas), safe_int(metrics.msg2_disparos)),
        pct_cta=pct(safe_int(metrics.agend_novos), safe_int(metrics.cta_disparos)),
        agend_total=agend_total,
        contatos_total=contatos_total,
        pct_agend_acoes=pct(agend_total, contatos_total),
    )


def format_pct_int(p: float) -> str:
    """Reply-rate display: whole percent ("14%")."""
    if not math.isfinite(p):
        return "0%"
    return f"{math.floor(p + 0.5)}%"


def format_pct2(p: float) -> str:
    """Conversion display: two decimals, comma separator ("1,67%")."""
    if not math.isfinite(p):
        return "0,00%"
    return f"{p:.2f}".replace(".", ",") + "%"


def sheets_row(metrics: DailyMetrics) -> str:
    """Tab-separated row in spreadsheet column order A..P, newline terminated.

    A weekday, B-C msg1 sent/replied, D msg1 %, E msg2 sent, F msg2 %,
    G CTA sent, H new bookings, I CTA conversion, J-M follow-up
    sent/replied/CTA/bookings, N total bookings, O bookings over contacts,
    P total contacts.
    """
    rates = compute_rates(metrics)
    columns = [
        _WEEKDAYS_PT[_parse_date_key(metrics.date_key).weekday()],
        safe_int(metrics.msg1_disparos),
        safe_int(metrics.msg1_respostas),
        format_pct_int(rates.pct_msg1),
        safe_int(metrics.msg2_disparos),
        format_pct_int(rates.pct_msg2),
        safe_int(metrics.cta_disparos),
        safe_int(metrics.agend_novos),
        format_pct2(rates.pct_cta),
        safe_int(metrics.follow_enviados),
        safe_int(metrics.follow_respostas),
        safe_int(metrics.follow_cta),
        safe_int(metrics.agend_follow),
        rates.agend_total,
        format_pct2(rates.pct_agend_acoes),
        rates.contatos_total,
    ]
    return "\t".join(str(c) for c in columns) + "\n"


# ---------------------------------------------------------------------------
# Week view
# ---------------------------------------------------------------------------


def week_date_keys(date_key: str) -> list[str]:
    """The 7 date keys (Monday first) of the week containing date_key."""
    base = _parse_date_key(date_key)
    monday = base + relativedelta(weekday=MO(-1))
    return [(monday + timedelta(days=i)).isoformat() for i in range(7)]


async def get_week_metrics(
    session: AsyncSession, workspace_id: str, board: str, date_key: str
) -> list[tuple[str, Optional[DailyMetrics]]]:
    """One (dateKey, row or None) pair per day of date_key's week."""
    keys = week_date_keys(date_key)
    ids = [make_metrics_id(workspace_id, board, k) for k in keys]
    result = await session.execute(select(DailyMetrics).where(DailyMetrics.id.in_(ids)))
    by_id = {row.id: row for row in result.scalars().all()}
    return [(k, by_id.get(i)) for k, i in zip(keys, ids)]
