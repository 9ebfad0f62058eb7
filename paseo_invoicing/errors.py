"""Validation errors raised while building an invoice."""

from __future__ import annotations


class InvoiceError(ValueError):
    """Base class for invoice input that cannot be rendered."""

    code = "invalid_invoice"


class InvalidAmount(InvoiceError):
    code = "invalid_amount"


class InvalidFolio(InvoiceError):
    code = "invalid_folio"


class InvalidDate(InvoiceError):
    code = "invalid_date"


class InvalidDuration(InvoiceError):
    code = "invalid_duration"


class InvalidText(InvoiceError):
    code = "invalid_text"
