"""Public package API for CFDI invoice generation."""

from __future__ import annotations

from typing import Optional

from .errors import (
    InvalidAmount,
    InvalidDate,
    InvalidDuration,
    InvalidFolio,
    InvalidText,
    InvoiceError,
)
from .folios import FolioExhausted, FolioSequence
from .rendering import InvoiceDocument, InvoiceInput, build_invoice, render_invoice


def run(
    host: str = "0.0.0.0",
    port: int = 8080,
    folios: Optional[FolioSequence] = None,
) -> None:
    from .server import run as _run

    _run(host, port, folios)


__all__ = [
    "FolioExhausted",
    "FolioSequence",
    "InvalidAmount",
    "InvalidDate",
    "InvalidDuration",
    "InvalidFolio",
    "InvalidText",
    "InvoiceDocument",
    "InvoiceError",
    "InvoiceInput",
    "build_invoice",
    "render_invoice",
    "run",
]
