"""Derived daily-metrics figures (computed on read, never stored)."""
from pydantic import BaseModel


class MetricsRates(BaseModel):
    pct_msg1: float = 0.0
    pct_msg2: float = 0.0
    pct_cta: float = 0.0
    agend_total: int = 0
    contatos_total: int = 0
    pct_agend_acoes: float = 0.0
