"""HTTP server entrypoints for invoice generation."""

from __future__ import annotations

import errno
import json
import logging
from datetime import datetime
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Dict, Optional, Tuple, Type

from .config import (
    DEFAULT_SETTINGS,
    FOLIO_START,
    LISTEN_BACKLOG,
    MAX_BODY_BYTES as MAX_BODY_BYTES_CONFIG,
    InvoiceSettings,
)
from .errors import InvoiceError
from .folios import FolioExhausted, FolioSequence
from .formatting import fmt_fecha, to_amount, to_minutes, to_text
from .rendering import InvoiceDocument, InvoiceInput, build_invoice

logger = logging.getLogger(__name__)

ValidationError = Tuple[int, Dict[str, Any]]

XML_ENDPOINTS = ("/invoice", "/api/invoices")
JSON_ENDPOINTS = ("/api/generate-invoice",)

DISCONNECT_ERRNOS = {errno.EPIPE, errno.ECONNRESET, errno.ETIMEDOUT}


def is_client_disconnect(exc: BaseException) -> bool:
    if isinstance(exc, (BrokenPipeError, ConnectionResetError, TimeoutError)):
        return True
    return isinstance(exc, OSError) and exc.errno in DISCONNECT_ERRNOS


def validate_invoice_payload(
    body: bytes,
) -> Tuple[Optional[Dict[str, Any]], Optional[ValidationError]]:
    try:
        payload = json.loads(body.decode("utf-8"))
    except UnicodeDecodeError:
        return None, (
            400,
            {"error": "invalid_encoding", "detail": "Body must be UTF-8 encoded JSON."},
        )
    except json.JSONDecodeError as exc:
        return None, (
            400,
            {
                "error": "invalid_json",
                "detail": f"{exc.msg} (line {exc.lineno}, column {exc.colno})",
            },
        )
    except ValueError as exc:
        return None, (400, {"error": "invalid_json", "detail": str(exc)})

    if not isinstance(payload, dict):
        return None, (
            400,
            {"error": "invalid_payload", "detail": "JSON root must be an object."},
        )

    for field in ("monto", "servicio_nombre", "duracion"):
        if payload.get(field) is None:
            return None, (
                400,
                {"error": "invalid_payload", "detail": f"'{field}' is required."},
            )

    if not isinstance(payload["servicio_nombre"], str):
        return None, (
            400,
            {"error": "invalid_payload", "detail": "'servicio_nombre' must be a string."},
        )

    return payload, None


def prepare_invoice(
    payload: Dict[str, Any],
    folios: FolioSequence,
    now: Callable[[], datetime] = datetime.now,
) -> InvoiceInput:
    """Fill in folio and date when the caller did not supply them.

    The other fields are checked first so that a rejected request does not
    consume a folio from ``folios``.
    """
    to_amount(payload["monto"])
    to_minutes(payload["duracion"])
    to_text(payload["servicio_nombre"], "servicio_nombre")
    fecha = payload.get("fecha")
    if fecha is None:
        fecha = now()
    else:
        fmt_fecha(fecha)
    folio = payload.get("folio")
    if folio is None:
        folio = folios.next()
    return InvoiceInput(
        folio=folio,
        fecha=fecha,
        monto=payload["monto"],
        servicio_nombre=payload["servicio_nombre"],
        duracion=payload["duracion"],
    )


class InvoiceHandler(BaseHTTPRequestHandler):
    MAX_BODY_BYTES = MAX_BODY_BYTES_CONFIG
    # In-memory only; see FOLIO_START. Use make_handler() to inject a durable sequence.
    folios = FolioSequence(start=FOLIO_START)
    settings: InvoiceSettings = DEFAULT_SETTINGS

    def _write_response(
        self,
        status: int,
        content_type: str,
        body: bytes,
        headers: Optional[Dict[str, str]] = None,
    ) -> bool:
        try:
            self.send_response(status)
            self.send_header("Content-Type", content_type)
            self.send_header("Content-Length", str(len(body)))
            for name, value in (headers or {}).items():
                self.send_header(name, value)
            self.end_headers()
            self.wfile.write(body)
            return True
        except Exception as exc:
            if is_client_disconnect(exc):
                return False
            raise

    def _send_json(self, status: int, payload: Dict[str, Any]) -> bool:
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        return self._write_response(status, "application/json; charset=utf-8", body)

    def _read_body(self) -> Optional[bytes]:
        header = self.headers.get("Content-Length")
        if header is None:
            self._send_json(
                411,
                {
                    "error": "missing_content_length",
                    "detail": "Content-Length header is required.",
                },
            )
            return None

        try:
            content_length = int(header)
        except ValueError:
            self._send_json(
                400,
                {
                    "error": "invalid_content_length",
                    "detail": "Content-Length must be an integer.",
                },
            )
            return None

        if content_length <= 0:
            self._send_json(400, {"error": "empty_body", "detail": "Request body cannot be empty."})
            return None

        if content_length > self.MAX_BODY_BYTES:
            self._send_json(
                413,
                {
                    "error": "payload_too_large",
                    "detail": f"Body exceeds {self.MAX_BODY_BYTES} bytes.",
                },
            )
            return None

        try:
            return self.rfile.read(content_length)
        except Exception as exc:
            if is_client_disconnect(exc):
                return None
            raise

    def _issue(self, payload: Dict[str, Any]) -> Optional[InvoiceDocument]:
        try:
            document = build_invoice(prepare_invoice(payload, self.folios), self.settings)
        except FolioExhausted as exc:
            logger.error("Cannot issue invoice: %s", exc)
            self._send_json(503, {"error": exc.code, "detail": str(exc)})
            return None
        except InvoiceError as exc:
            logger.warning("Rejected invoice input: %s", exc)
            self._send_json(422, {"error": exc.code, "detail": str(exc)})
            return None
        except Exception as exc:
            logger.exception("Invoice generation failed")
            self._send_json(500, {"error": "generation_failed", "detail": str(exc)})
            return None

        logger.info(
            "Issued invoice folio=%s total=%s %s",
            document.folio,
            document.total,
            self.settings.moneda,
        )
        return document

    def do_POST(self) -> None:
        if self.path not in XML_ENDPOINTS + JSON_ENDPOINTS:
            self._send_json(404, {"error": "not_found", "detail": "Unsupported endpoint."})
            return

        body = self._read_body()
        if body is None:
            return

        payload, validation_error = validate_invoice_payload(body)
        if validation_error is not None:
            status, payload_body = validation_error
            self._send_json(status, payload_body)
            return

        document = self._issue(payload)
        if document is None:
            return

        if self.path in JSON_ENDPOINTS:
            self._send_json(
                200,
                {
                    "xml": document.xml,
                    "folio": document.folio,
                    "subtotal": document.subtotal,
                    "iva": document.iva,
                    "total": document.total,
                    "paseo_id": payload.get("paseoId", payload.get("paseo_id")),
                },
            )
            return

        self._write_response(
            200,
            "application/xml; charset=utf-8",
            document.to_bytes(),
            headers={"X-Invoice-Folio": document.folio},
        )

    def do_GET(self) -> None:
        if self.path in ("/", "/health", "/healthz"):
            self._send_json(200, {"status": "ok", "next_folio": self.folios.peek()})
            return
        self._send_json(404, {"error": "not_found", "detail": "Unsupported endpoint."})

    def handle_one_request(self) -> None:
        try:
            super().handle_one_request()
        except Exception as exc:
            if is_client_disconnect(exc):
                return
            raise

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)


class InvoiceHTTPServer(ThreadingHTTPServer):
    daemon_threads = True
    allow_reuse_address = True
    request_queue_size = LISTEN_BACKLOG


def make_handler(folios: FolioSequence) -> Type[InvoiceHandler]:
    """Return a handler class that reserves folios from ``folios``."""
    return type("InvoiceHandler", (InvoiceHandler,), {"folios": folios})


def run(
    host: str = "0.0.0.0",
    port: int = 8080,
    folios: Optional[FolioSequence] = None,
) -> None:
    handler = InvoiceHandler if folios is None else make_handler(folios)
    server = InvoiceHTTPServer((host, port), handler)
    logger.info("Invoice API server listening on http://%s:%s", host, port)
    try:
        server.serve_forever()
    finally:
        server.server_close()
