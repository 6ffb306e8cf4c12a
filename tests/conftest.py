"""
Shared test fixtures.
"""

from datetime import date

import pytest

from app.engines.stub_engine import StubEngine
from app.models.enums import TextSource
from app.pipeline.reconciliation import Reconciler
from app.pipeline.text_recovery import TextRecovery
from app.schemas.records import ExtractedRecord, LineItem
from app.storage.memory import InMemoryShipmentRepository

SAMPLE_CARRIER_TEXT = """KRONOS International, Inc.
Peschstrasse 5, 51373 Leverkusen
Your Partner: Anna Schmidt
Telephone: +49 214 356 0
Email: logistics@kronosww.com

CARRIER NOTIFICATION TO:
Expeditors International GmbH
Hafenstrasse 12
20457 Hamburg

Shipment No.: 1234567
Order No.: 4500123456
Delivery No.: 80012345
Loading Date: 12.03.2024
Sched. Delivery Date: 19.03.2024

Shipping Point
Street: Industriestrasse 1
Postal Code: 26954
City: Nordenham
Country: Germany
Way of Forwarding: Sea Freight
Delivery Terms: FOB Hamburg

Delivery Address:
Acme Pigments Ltd
12 Harbour Road
Felixstowe IP11 3XY
United Kingdom
Customer No.: 100200
Customer PO No.: PO-7788
Customer Contact: John Miller
Customer Phone Number: +44 1394 600 700
Customer Email: purchasing@acme-pigments.co.uk
VAT No.: GB 123 4567 89

Notify 1:
Acme Logistics
Dock Street 4
Felixstowe
notify@acme-logistics.co.uk
Tel. +44 1394 111 222

Notify 2:
Same as consignee

PRODUCT
TITANIUM DIOXIDE KRONOS 2310 Type 2310   10.000,00 KG  400  10.340,00 KG
Batch 24031201
400 PE-Bags of 25 KG on pallets
20 Pallets

TOTAL 10.000,00 KG 400 10.340,00 KG

HS Code: 3206 1100
B/L REMARKS:
FREIGHT PREPAID
PLEASE ISSUE EXPRESS B/L
MARKS TEXT:
ACME / FELIXSTOWE
"""

SAMPLE_PDF_BYTES = b"%PDF-1.4\n% carrier notification test document\n"


@pytest.fixture
def sample_text():
    """A carrier notification as recovered from the embedded text layer."""
    return SAMPLE_CARRIER_TEXT


@pytest.fixture
def sample_pdf_bytes():
    """Bytes that pass the PDF signature check; engines are stubbed."""
    return SAMPLE_PDF_BYTES


@pytest.fixture
def extraction_date():
    return date(2024, 3, 12)


@pytest.fixture
def sample_record():
    """A complete record as a reviewer would save it."""
    return ExtractedRecord(
        shipment_no="1234567",
        order_no="4500123456",
        customer_no="100200",
        po_no="PO-7788",
        loading_date="12.03.2024",
        consignee_address="Acme Pigments Ltd\n12 Harbour Road\nFelixstowe IP11 3XY\nUnited Kingdom",
        total_net_kg=10000.0,
        total_gross_kg=10340.0,
        total_pkgs=400,
        items=[
            LineItem(
                product_name="TITANIUM DIOXIDE KRONOS 2310 Type 2310",
                net_weight=10000.0,
                gross_weight=10340.0,
                package_count=400,
                packaging_description="400 PE-Bags of 25 KG on pallets",
                pallet_count=20,
            ),
        ],
    )


@pytest.fixture
def repository():
    return InMemoryShipmentRepository()


@pytest.fixture
def stub_engines(sample_text):
    """Embedded text wins; layout is empty; OCR fails."""
    return [
        StubEngine(TextSource.EMBEDDED_TEXT, text=sample_text),
        StubEngine(TextSource.LAYOUT_TEXT, text="   "),
        StubEngine(TextSource.OCR_TEXT, error="tesseract not installed"),
    ]


@pytest.fixture
def stub_recovery(stub_engines):
    return TextRecovery(engines=stub_engines)


@pytest.fixture
def disabled_reconciler():
    return Reconciler(enabled=False)
