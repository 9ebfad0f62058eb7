"""CFDI 4.0 invoice XML rendering."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Union

from lxml import etree

from .config import DEFAULT_SETTINGS, InvoiceSettings, Party
from .errors import (
    InvalidAmount,
    InvalidDate,
    InvalidDuration,
    InvalidFolio,
    InvalidText,
    InvoiceError,
)
from .formatting import (
    fmt_fecha,
    fmt_folio,
    fmt_money,
    fmt_rate,
    round2,
    to_amount,
    to_minutes,
    to_text,
)

CFDI_NAMESPACE = "http://www.sat.gob.mx/cfd/4"
CFDI_SCHEMA_LOCATION = (
    "http://www.sat.gob.mx/cfd/4 http://www.sat.gob.mx/sitio_internet/cfd/4/cfdv40.xsd"
)
XSI_NAMESPACE = "http://www.w3.org/2001/XMLSchema-instance"
NSMAP = {"cfdi": CFDI_NAMESPACE, "xsi": XSI_NAMESPACE}


@dataclass(frozen=True)
class InvoiceInput:
    folio: Union[int, str]
    fecha: Union[str, datetime]
    monto: Union[int, float, Decimal, str]
    servicio_nombre: str
    duracion: int

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "InvoiceInput":
        missing = [
            name
            for name in ("folio", "fecha", "monto", "servicio_nombre", "duracion")
            if name not in data
        ]
        if missing:
            raise _missing_field_error(missing[0])
        return cls(
            folio=data["folio"],
            fecha=data["fecha"],
            monto=data["monto"],
            servicio_nombre=data["servicio_nombre"],
            duracion=data["duracion"],
        )


@dataclass(frozen=True)
class InvoiceDocument:
    folio: str
    fecha: str
    subtotal: str
    iva: str
    total: str
    descripcion: str
    xml: str

    def to_bytes(self) -> bytes:
        return self.xml.encode("utf-8")


def _missing_field_error(name: str) -> InvoiceError:
    message = f"Missing required field '{name}'."
    if name == "folio":
        return InvalidFolio(message)
    if name == "fecha":
        return InvalidDate(message)
    if name == "monto":
        return InvalidAmount(message)
    if name == "duracion":
        return InvalidDuration(message)
    return InvoiceError(message)


def _ns_tag(name: str) -> str:
    return f"{{{CFDI_NAMESPACE}}}{name}"


def _cfdi(
    parent: etree._Element,
    name: str,
    attrs: Optional[Dict[str, str]] = None,
) -> etree._Element:
    element = etree.SubElement(parent, _ns_tag(name))
    for key, value in (attrs or {}).items():
        element.set(key, value)
    return element


def _add_traslados(
    parent: etree._Element,
    base: str,
    iva: str,
    settings: InvoiceSettings,
) -> None:
    traslados = _cfdi(parent, "Traslados")
    _cfdi(
        traslados,
        "Traslado",
        {
            "Base": base,
            "Impuesto": settings.tax_code,
            "TipoFactor": "Tasa",
            "TasaOCuota": fmt_rate(settings.tax_rate),
            "Importe": iva,
        },
    )


def _party_attrs(party: Party, receiver: bool) -> Dict[str, str]:
    attrs = {"Rfc": party.rfc, "Nombre": party.nombre}
    if receiver:
        attrs["DomicilioFiscalReceptor"] = party.domicilio_fiscal or ""
        attrs["RegimenFiscalReceptor"] = party.regimen_fiscal
        attrs["UsoCFDI"] = party.uso_cfdi or ""
    else:
        attrs["RegimenFiscal"] = party.regimen_fiscal
    return attrs


def describe_service(servicio_nombre: str, duracion: int) -> str:
    return f"Servicio de paseo de perro - {servicio_nombre} - Duración: {duracion} minutos"


def _build_tree(
    folio: str,
    fecha: str,
    subtotal: str,
    iva: str,
    total: str,
    descripcion: str,
    settings: InvoiceSettings,
) -> etree._Element:
    root = etree.Element(_ns_tag("Comprobante"), nsmap=NSMAP)
    root.set(f"{{{XSI_NAMESPACE}}}schemaLocation", CFDI_SCHEMA_LOCATION)
    for key, value in (
        ("Version", settings.version),
        ("Serie", settings.serie),
        ("Folio", folio),
        ("Fecha", fecha),
        ("FormaPago", settings.forma_pago),
        ("SubTotal", subtotal),
        ("Moneda", settings.moneda),
        ("Total", total),
        ("TipoDeComprobante", settings.tipo_comprobante),
        ("MetodoPago", settings.metodo_pago),
        ("LugarExpedicion", settings.lugar_expedicion),
    ):
        root.set(key, value)

    _cfdi(root, "Emisor", _party_attrs(settings.emisor, receiver=False))
    _cfdi(root, "Receptor", _party_attrs(settings.receptor, receiver=True))

    conceptos = _cfdi(root, "Conceptos")
    concepto = _cfdi(
        conceptos,
        "Concepto",
        {
            "ClaveProdServ": settings.clave_prod_serv,
            "Cantidad": "1",
            "ClaveUnidad": settings.clave_unidad,
            "Unidad": settings.unidad,
            "Descripcion": descripcion,
            "ValorUnitario": subtotal,
            "Importe": subtotal,
            "ObjetoImp": settings.objeto_imp,
        },
    )
    _add_traslados(_cfdi(concepto, "Impuestos"), subtotal, iva, settings)

    impuestos = _cfdi(root, "Impuestos", {"TotalImpuestosTrasladados": iva})
    _add_traslados(impuestos, subtotal, iva, settings)
    return root


def build_invoice(
    invoice: InvoiceInput,
    settings: InvoiceSettings = DEFAULT_SETTINGS,
) -> InvoiceDocument:
    """Render ``invoice`` as a CFDI 4.0 document.

    Every field is validated before anything is rendered. ``iva`` is computed
    on the rounded subtotal, so ``total == subtotal + iva`` holds exactly on
    the printed values.
    """
    folio = fmt_folio(invoice.folio, settings.folio_width)
    fecha = fmt_fecha(invoice.fecha)
    subtotal_amount = round2(to_amount(invoice.monto))
    duracion = to_minutes(invoice.duracion)
    servicio_nombre = to_text(invoice.servicio_nombre, "servicio_nombre")

    iva_amount = round2(subtotal_amount * settings.tax_rate)
    total_amount = subtotal_amount + iva_amount
    subtotal = fmt_money(subtotal_amount)
    iva = fmt_money(iva_amount)
    total = fmt_money(total_amount)
    descripcion = describe_service(servicio_nombre, duracion)

    try:
        root = _build_tree(folio, fecha, subtotal, iva, total, descripcion, settings)
    except ValueError as exc:
        # lxml refuses text that XML 1.0 cannot carry, e.g. in configured names.
        raise InvalidText(f"Invoice text is not XML compatible: {exc}") from exc

    xml = etree.tostring(root, xml_declaration=True, encoding="UTF-8", pretty_print=True)
    return InvoiceDocument(
        folio=folio,
        fecha=fecha,
        subtotal=subtotal,
        iva=iva,
        total=total,
        descripcion=descripcion,
        xml=xml.decode("utf-8"),
    )


def render_invoice(
    data: Mapping[str, Any],
    settings: InvoiceSettings = DEFAULT_SETTINGS,
) -> bytes:
    return build_invoice(InvoiceInput.from_mapping(data), settings).to_bytes()
