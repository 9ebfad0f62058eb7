import unittest
import xml.etree.ElementTree as ET
from dataclasses import replace
from decimal import ROUND_HALF_UP, Decimal

from paseo_invoicing.config import DEFAULT_SETTINGS
from paseo_invoicing.errors import InvalidAmount, InvalidFolio, InvalidText, InvoiceError
from paseo_invoicing.rendering import InvoiceInput, build_invoice, render_invoice

CFDI = "{http://www.sat.gob.mx/cfd/4}"


def make_input(**overrides) -> InvoiceInput:
    fields = {
        "folio": 42,
        "fecha": "2025-01-15T10:30:00.000Z",
        "monto": 250.00,
        "servicio_nombre": "Paseo Estándar",
        "duracion": 60,
    }
    fields.update(overrides)
    return InvoiceInput(**fields)


class BuildInvoiceTests(unittest.TestCase):
    def test_computes_tax_and_total(self) -> None:
        document = build_invoice(make_input(monto=250.00))

        self.assertEqual(document.subtotal, "250.00")
        self.assertEqual(document.iva, "40.00")
        self.assertEqual(document.total, "290.00")

    def test_renders_header_fields(self) -> None:
        document = build_invoice(make_input())
        root = ET.fromstring(document.to_bytes())

        self.assertEqual(root.tag, f"{CFDI}Comprobante")
        self.assertEqual(root.get("Version"), "4.0")
        self.assertEqual(root.get("Serie"), "A")
        self.assertEqual(root.get("Folio"), "000042")
        self.assertEqual(root.get("Fecha"), "2025-01-15T10:30:00")
        self.assertEqual(root.get("SubTotal"), "250.00")
        self.assertEqual(root.get("Total"), "290.00")
        self.assertEqual(root.get("Moneda"), "MXN")
        self.assertEqual(root.get("TipoDeComprobante"), "I")
        self.assertEqual(root.get("MetodoPago"), "PUE")
        self.assertEqual(root.get("LugarExpedicion"), "44100")

    def test_renders_fixed_issuer_and_receiver(self) -> None:
        root = ET.fromstring(build_invoice(make_input()).to_bytes())

        emisor = root.find(f"{CFDI}Emisor")
        receptor = root.find(f"{CFDI}Receptor")
        self.assertEqual(emisor.get("Rfc"), "PPE250101XX1")
        self.assertEqual(emisor.get("Nombre"), "Patitas Felices")
        self.assertEqual(emisor.get("RegimenFiscal"), "601")
        self.assertEqual(receptor.get("Rfc"), "XAXX010101000")
        self.assertEqual(receptor.get("UsoCFDI"), "G03")
        self.assertEqual(receptor.get("RegimenFiscalReceptor"), "616")

    def test_line_item_embeds_service_and_duration(self) -> None:
        document = build_invoice(
            make_input(monto=150.00, duracion=30, servicio_nombre="Paseo Básico")
        )
        root = ET.fromstring(document.to_bytes())
        concepto = root.find(f"{CFDI}Conceptos/{CFDI}Concepto")

        self.assertIn("Paseo Básico", concepto.get("Descripcion"))
        self.assertIn("30", concepto.get("Descripcion"))
        self.assertEqual(concepto.get("ValorUnitario"), "150.00")
        self.assertEqual(concepto.get("Importe"), "150.00")
        self.assertEqual(concepto.get("ClaveProdServ"), "90111501")
        self.assertEqual(concepto.get("Cantidad"), "1")

    def test_line_and_summary_tax_blocks_match(self) -> None:
        root = ET.fromstring(build_invoice(make_input(monto=150)).to_bytes())
        line_tax = root.find(
            f"{CFDI}Conceptos/{CFDI}Concepto/{CFDI}Impuestos/{CFDI}Traslados/{CFDI}Traslado"
        )
        summary = root.find(f"{CFDI}Impuestos")
        summary_tax = summary.find(f"{CFDI}Traslados/{CFDI}Traslado")

        self.assertEqual(summary.get("TotalImpuestosTrasladados"), "24.00")
        for traslado in (line_tax, summary_tax):
            self.assertEqual(traslado.get("Base"), "150.00")
            self.assertEqual(traslado.get("Importe"), "24.00")
            self.assertEqual(traslado.get("TasaOCuota"), "0.160000")
            self.assertEqual(traslado.get("Impuesto"), "002")

    def test_boundary_amounts(self) -> None:
        cases = [
            (0, ("0.00", "0.00", "0.00")),
            (-0.0, ("0.00", "0.00", "0.00")),
            ("-0", ("0.00", "0.00", "0.00")),
            (0.01, ("0.01", "0.00", "0.01")),
            (0.005, ("0.01", "0.00", "0.01")),
            (100.00, ("100.00", "16.00", "116.00")),
            (99.995, ("100.00", "16.00", "116.00")),
            ("0.10", ("0.10", "0.02", "0.12")),
        ]
        for monto, expected in cases:
            with self.subTest(monto=monto):
                document = build_invoice(make_input(monto=monto))
                self.assertEqual((document.subtotal, document.iva, document.total), expected)

    def test_total_is_sum_of_printed_subtotal_and_tax(self) -> None:
        for monto in (0.03, 1.07, 19.99, 33.33, 149.5, 1234.56, Decimal("87.125")):
            with self.subTest(monto=monto):
                document = build_invoice(make_input(monto=monto))
                subtotal = Decimal(document.subtotal)
                iva = Decimal(document.iva)
                self.assertEqual(Decimal(document.total), subtotal + iva)
                self.assertEqual(
                    iva, (subtotal * Decimal("0.16")).quantize(Decimal("0.01"), ROUND_HALF_UP)
                )

    def test_rendering_is_deterministic(self) -> None:
        first = build_invoice(make_input())
        second = build_invoice(make_input())

        self.assertEqual(first.to_bytes(), second.to_bytes())

    def test_escapes_markup_in_service_name(self) -> None:
        name = 'Paseo <VIP> & "Premium"'
        document = build_invoice(make_input(servicio_nombre=name))

        self.assertNotIn("<VIP>", document.xml)
        root = ET.fromstring(document.to_bytes())
        concepto = root.find(f"{CFDI}Conceptos/{CFDI}Concepto")
        self.assertIn(name, concepto.get("Descripcion"))

    def test_escapes_markup_in_settings(self) -> None:
        settings = replace(
            DEFAULT_SETTINGS,
            emisor=replace(DEFAULT_SETTINGS.emisor, nombre="Perros & Gatos"),
        )
        root = ET.fromstring(build_invoice(make_input(), settings).to_bytes())

        self.assertEqual(root.find(f"{CFDI}Emisor").get("Nombre"), "Perros & Gatos")

    def test_uses_configured_tax_rate(self) -> None:
        settings = replace(DEFAULT_SETTINGS, tax_rate=Decimal("0.08"))
        document = build_invoice(make_input(monto=250), settings)

        self.assertEqual(document.iva, "20.00")
        self.assertEqual(document.total, "270.00")
        self.assertIn('TasaOCuota="0.080000"', document.xml)

    def test_rejects_invalid_amount_before_rendering(self) -> None:
        for monto in (-1, float("nan"), float("inf")):
            with self.subTest(monto=monto):
                with self.assertRaises(InvalidAmount):
                    build_invoice(make_input(monto=monto))

    def test_rejects_folio_overflow(self) -> None:
        with self.assertRaises(InvalidFolio):
            build_invoice(make_input(folio=1000000))

    def test_rejects_non_string_service_name(self) -> None:
        with self.assertRaises(InvoiceError):
            build_invoice(make_input(servicio_nombre=None))

    def test_rejects_control_characters_in_service_name(self) -> None:
        for name in ("Paseo\x01VIP", "Paseo\x00", "Paseo\x1b[0m", "Paseo\ufffe"):
            with self.subTest(name=name):
                with self.assertRaises(InvalidText):
                    build_invoice(make_input(servicio_nombre=name))

    def test_rejects_control_characters_in_settings(self) -> None:
        settings = replace(
            DEFAULT_SETTINGS,
            emisor=replace(DEFAULT_SETTINGS.emisor, nombre="Patitas\x02Felices"),
        )

        with self.assertRaises(InvalidText):
            build_invoice(make_input(), settings)

    def test_keeps_line_breaks_and_tabs_in_service_name(self) -> None:
        name = "Paseo\tlargo\nparque"
        root = ET.fromstring(build_invoice(make_input(servicio_nombre=name)).to_bytes())

        concepto = root.find(f"{CFDI}Conceptos/{CFDI}Concepto")
        self.assertIn(name, concepto.get("Descripcion"))

    def test_rejects_amounts_beyond_precision(self) -> None:
        for monto in ("1e30", 1e300, 10 ** 40, "99999999999999999"):
            with self.subTest(monto=monto):
                with self.assertRaises(InvalidAmount):
                    build_invoice(make_input(monto=monto))

    def test_largest_amount_still_renders(self) -> None:
        document = build_invoice(make_input(monto="9999999999999999.99"))

        self.assertEqual(document.subtotal, "9999999999999999.99")
        self.assertEqual(
            Decimal(document.total), Decimal(document.subtotal) + Decimal(document.iva)
        )


class RenderInvoiceTests(unittest.TestCase):
    def test_render_invoice_returns_xml_bytes(self) -> None:
        xml = render_invoice(
            {
                "folio": 7,
                "fecha": "2025-02-01T09:00:00",
                "monto": "150.00",
                "servicio_nombre": "Paseo Básico",
                "duracion": 30,
            }
        )

        self.assertIsInstance(xml, bytes)
        self.assertTrue(xml.startswith(b"<?xml version='1.0' encoding='UTF-8'?>"))
        self.assertIn('Folio="000007"'.encode("utf-8"), xml)

    def test_render_invoice_reports_missing_fields(self) -> None:
        with self.assertRaises(InvalidAmount):
            render_invoice(
                {"folio": 1, "fecha": "2025-02-01", "servicio_nombre": "x", "duracion": 30}
            )


if __name__ == "__main__":
    unittest.main()
