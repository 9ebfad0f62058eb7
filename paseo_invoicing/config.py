"""Runtime configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional


def env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= minimum else default


def env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


def env_decimal(name: str, default: str, minimum: str = "0") -> Decimal:
    raw = os.getenv(name)
    fallback = Decimal(default)
    if raw is None:
        return fallback
    try:
        value = Decimal(raw.strip())
    except InvalidOperation:
        return fallback
    if not value.is_finite() or value < Decimal(minimum):
        return fallback
    return value


@dataclass(frozen=True)
class Party:
    """Fiscal identity printed on the invoice (issuer or receiver)."""

    rfc: str
    nombre: str
    regimen_fiscal: str
    domicilio_fiscal: Optional[str] = None
    uso_cfdi: Optional[str] = None


@dataclass(frozen=True)
class InvoiceSettings:
    """Fixed document constants; none of these are computed per invoice."""

    emisor: Party
    receptor: Party
    version: str = "4.0"
    serie: str = "A"
    forma_pago: str = "01"
    moneda: str = "MXN"
    tipo_comprobante: str = "I"
    metodo_pago: str = "PUE"
    lugar_expedicion: str = "44100"
    tax_rate: Decimal = Decimal("0.16")
    tax_code: str = "002"
    clave_prod_serv: str = "90111501"
    clave_unidad: str = "E48"
    unidad: str = "Servicio"
    objeto_imp: str = "02"
    folio_width: int = 6


def load_invoice_settings() -> InvoiceSettings:
    place_of_issue = env_str("INVOICE_PLACE_OF_ISSUE", "44100")
    emisor = Party(
        rfc=env_str("INVOICE_ISSUER_RFC", "PPE250101XX1"),
        nombre=env_str("INVOICE_ISSUER_NAME", "Patitas Felices"),
        regimen_fiscal=env_str("INVOICE_ISSUER_REGIME", "601"),
    )
    # Generic "público en general" receiver.
    receptor = Party(
        rfc="XAXX010101000",
        nombre="Cliente General",
        regimen_fiscal="616",
        domicilio_fiscal=place_of_issue,
        uso_cfdi="G03",
    )
    return InvoiceSettings(
        emisor=emisor,
        receptor=receptor,
        serie=env_str("INVOICE_SERIE", "A"),
        moneda=env_str("INVOICE_CURRENCY", "MXN"),
        lugar_expedicion=place_of_issue,
        tax_rate=env_decimal("INVOICE_TAX_RATE", "0.16"),
    )


DEFAULT_SETTINGS = load_invoice_settings()

FOLIO_MAX = 10 ** DEFAULT_SETTINGS.folio_width - 1
# The sequence lives in process memory, so a restart issues folios from
# INVOICE_FOLIO_START again. Set it past the last issued folio, or pass a
# persistent sequence to server.run(), to avoid repeats across runs.
FOLIO_START = env_int("INVOICE_FOLIO_START", 1, minimum=0)

MAX_BODY_BYTES = env_int("INVOICE_MAX_BODY_BYTES", 64 * 1024, minimum=1024)
LISTEN_BACKLOG = env_int("INVOICE_LISTEN_BACKLOG", 128, minimum=1)
LOG_LEVEL = env_str("INVOICE_LOG_LEVEL", "INFO").upper()
