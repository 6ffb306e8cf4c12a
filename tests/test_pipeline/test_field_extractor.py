"""
Tests for the field extractor, rule by rule and end to end.
"""

from datetime import date

import pytest

from app.pipeline.field_extractor import (
    extract_carrier, extract_consignee, extract_customer, extract_fields,
    extract_header, extract_identifiers, extract_notify, extract_order_refs,
    extract_remarks, extract_shipping_point, normalize_text,
)
from app.pipeline.profile import DEFAULT_PROFILE


@pytest.fixture
def text(sample_text):
    return normalize_text(sample_text)


class TestHeader:

    def test_shipper_contact(self, text):
        assert extract_header(text) == {
            "your_partner": "Anna Schmidt",
            "shipper_phone": "+49 214 356 0",
            "shipper_email": "logistics@kronosww.com",
        }


class TestIdentifiers:

    def test_ids_and_dates(self, text):
        ids = extract_identifiers(text)
        assert ids["shipment_no"] == "1234567"
        assert ids["order_no"] == "4500123456"
        assert ids["delivery_no"] == "80012345"
        assert ids["loading_date"] == "12.03.2024"
        assert ids["scheduled_delivery_date"] == "19.03.2024"

    def test_scheduled_date_from_later_label(self):
        text = (
            "Scheduled Delivery Date: to be confirmed " + "x" * 100 + "\n"
            "Scheduled Delivery Date: 01.04.2024"
        )
        assert extract_identifiers(normalize_text(text))["scheduled_delivery_date"] == "01.04.2024"

    def test_missing_ids_are_blank(self):
        ids = extract_identifiers("nothing useful")
        assert set(ids.values()) == {""}


class TestShippingPoint:

    def test_labelled_block(self, text):
        assert extract_shipping_point(text) == {
            "shipping_street": "Industriestrasse 1",
            "shipping_postal": "26954",
            "shipping_city": "Nordenham",
            "shipping_country": "Germany",
            "way_of_forwarding": "Sea Freight",
            "delivery_terms": "FOB Hamburg",
        }

    def test_unlabelled_block(self):
        text = normalize_text(
            "Shipping Point address:\n"
            "Kronos Titan GmbH\n"
            "Titanstrasse 2\n"
            "26954 Nordenham\n"
            "Germany\n"
            "Way of Forwarding: Truck\n"
            "Delivery Terms: FCA Nordenham\n"
        )
        sp = extract_shipping_point(text)
        assert sp["shipping_street"] == "Kronos Titan GmbH, Titanstrasse 2"
        assert sp["shipping_postal"] == "26954"
        assert sp["shipping_city"] == "Nordenham"
        assert sp["shipping_country"] == "Germany"
        assert sp["way_of_forwarding"] == "Truck"
        assert sp["delivery_terms"] == "FCA Nordenham"


class TestParties:

    def test_carrier_block(self, text):
        assert extract_carrier(text) == "Expeditors International GmbH\nHafenstrasse 12\n20457 Hamburg"

    def test_carrier_fallback_anchor(self):
        text = "Expeditors International GmbH\nHafenstrasse 12\nShipment No.: 1"
        assert extract_carrier(text) == "Expeditors International GmbH\nHafenstrasse 12"

    def test_consignee(self, text):
        assert extract_consignee(text) == (
            "Acme Pigments Ltd\n12 Harbour Road\nFelixstowe IP11 3XY\nUnited Kingdom"
        )

    def test_consignee_drops_shipper_lines(self):
        text = "Consignee:\nKRONOS Worldwide\nAcme Pigments Ltd\nHarbour Road 12\nCustomer No.: 1"
        assert extract_consignee(text) == "Acme Pigments Ltd\nHarbour Road 12"

    def test_consignee_site_leak_uses_later_occurrence(self):
        text = (
            "Delivery Address: Werk Nordenham\nTitanstrasse\nCustomer No.: 1\n\n"
            "Consignee: Acme Pigments Ltd\nHarbour Road 12\n"
        )
        assert extract_consignee(text) == "Acme Pigments Ltd\nHarbour Road 12"

    def test_customer(self, text):
        assert extract_customer(text, "+49 214 356 0") == {
            "customer_no": "100200",
            "customer_po": "PO-7788",
            "customer_contact": "John Miller",
            "customer_phone": "+44 1394 600 700",
            "customer_email": "purchasing@acme-pigments.co.uk",
            "vat_no": "GB123456789",
        }

    def test_customer_rejects_shipper_email_and_phone(self):
        text = (
            "Customer Phone Number: +49 214 356 0\n"
            "Customer Email: logistics@kronosww.com\n"
        )
        customer = extract_customer(text, "+49 (214) 3560", DEFAULT_PROFILE)
        assert customer["customer_phone"] == ""
        assert customer["customer_email"] == ""

    def test_notify_parties(self, text):
        assert extract_notify(text, 1) == {
            "notify1_address": "Acme Logistics\nDock Street 4\nFelixstowe",
            "notify1_email": "notify@acme-logistics.co.uk",
            "notify1_phone": "+44 1394 111 222",
        }
        assert extract_notify(text, 2)["notify2_address"] == "Same as consignee"


class TestRemarks:

    def test_bl_remarks_and_hs_code(self, text):
        remarks = extract_remarks(text)
        assert remarks["hs_code"] == "32061100"
        assert remarks["bl_remarks"] == (
            "FREIGHT PREPAID\nPLEASE ISSUE EXPRESS B/L\n\nMARKS TEXT:\nACME / FELIXSTOWE"
        )

    def test_express_line_added_when_outside_remarks(self):
        text = "PLEASE ISSUE EXPRESS B/L AT DESTINATION\nLABELLING: neutral labels\n"
        remarks = extract_remarks(text)
        assert remarks["bl_remarks"] == (
            "PLEASE ISSUE EXPRESS B/L AT DESTINATION\n\nLABELLING:\nneutral labels"
        )

    def test_po_prefers_order_label(self):
        refs = extract_order_refs("LABELLING\nORDER No 4711/24\n", customer_po="PO-1")
        assert refs == {"order_label": "4711/24", "po_no": "4711/24"}

    def test_po_falls_back_to_customer_po(self):
        assert extract_order_refs("", customer_po="PO-1")["po_no"] == "PO-1"


class TestExtractFields:

    def test_end_to_end(self, sample_text, extraction_date):
        record = extract_fields(sample_text, today=extraction_date)

        assert record.shipment_no == "1234567"
        assert record.total_net_kg == 10000.0
        assert record.total_pkgs == 400
        assert record.total_gross_kg == 10340.0
        assert len(record.items) == 1

        assert record.po_no == "PO-7788"
        assert record.customer_no == "100200"
        assert record.shipping_city == "Nordenham"
        assert record.signature_name == ""
        assert record.signature_date == "2024-03-12"

    def test_signature_date_defaults_to_today(self, sample_text):
        assert extract_fields(sample_text).signature_date == date.today().isoformat()

    def test_empty_text_gives_blank_record(self):
        record = extract_fields("")
        assert record.shipment_no == ""
        assert record.total_net_kg is None
        assert record.items == []
        assert record.confidence == 0
