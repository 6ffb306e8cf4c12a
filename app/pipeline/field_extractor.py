"""
Field extractor: winning text -> ExtractedRecord.

Each group of fields is a pure function over the normalised text so rules
can be unit-tested on their own; extract_fields() composes them. A missed
field is never an error: it stays "" / None and shows up later as a
confidence warning.
"""

import re
from datetime import date
from typing import Optional

import structlog

from app.pipeline.label_rules import (
    clean, clean_lines, find_email, grab_block, grab_near, match,
    parse_labeled_fields, parse_shipping_point, same_phone,
    sanitize_carrier_block, split_party_lines, strip_prefix,
)
from app.pipeline.line_items import extract_items, extract_totals
from app.pipeline.profile import DEFAULT_PROFILE, DocumentProfile
from app.schemas.records import ExtractedRecord

logger = structlog.get_logger(__name__)

_ANY_LINE = re.compile(r'([^\n]+)')
_ID_VALUE = re.compile(r'([0-9]{4,}[0-9A-Za-z\-]*)')
_DATE_VALUE = re.compile(r'([0-9]{2}[.\-/][0-9]{2}[.\-/][0-9]{2,4})')


def normalize_text(raw: str) -> str:
    return clean(raw).replace('\f', '\n')


# ─── Header (shipper contact) ─────────────────────────────────

_HEADER_ANCHOR = re.compile(r'Your\s*Partner|Telephone|Email', re.I)


def header_window(text: str) -> str:
    """Slice of the first page around the shipper's contact box."""
    top = text[:2000]
    m = _HEADER_ANCHOR.search(top)
    if not m:
        return top[:600]
    return top[max(0, m.start() - 80):m.start() + 600]


def extract_header(text: str) -> dict[str, str]:
    header = header_window(text)
    return {
        "your_partner": strip_prefix(grab_near(re.compile(r'Your\s*Partner[.:\-]?', re.I), _ANY_LINE, header, 100)),
        "shipper_phone": strip_prefix(grab_near(
            re.compile(r'(?:Telephone|Phone)[.:\-]?', re.I), re.compile(r'(\+?[0-9][0-9 ()/\-]+)'), header, 120,
        )),
        "shipper_email": find_email(grab_near(re.compile(r'Email[.:\-]?', re.I), _ANY_LINE, header, 140)),
    }


# ─── Identifiers & dates ──────────────────────────────────────

_SCHEDULED_LABEL = re.compile(r'Sched\.?(?:uled)?\s*Delivery\s*Date\b', re.I)
_SCHEDULED_WIDE = re.compile(
    r'Sched\.?(?:uled)?\s*Delivery\s*Date[^\d]{0,30}(\d{2}[.\-/]\d{2}[.\-/]\d{2,4})', re.I,
)


def extract_identifiers(text: str) -> dict[str, str]:
    def grab_id(label: str) -> str:
        return strip_prefix(grab_near(re.compile(label, re.I), _ID_VALUE, text, 120))

    def grab_date(label: re.Pattern) -> str:
        return grab_near(label, _DATE_VALUE, text, 90)

    return {
        "shipment_no": grab_id(r'Shipment\s*No\b'),
        "order_no": grab_id(r'Order\s*No\b'),
        "delivery_no": grab_id(r'Delivery\s*No\b'),
        "loading_date": grab_date(re.compile(r'Loading\s*Date\b', re.I)),
        "scheduled_delivery_date": grab_date(_SCHEDULED_LABEL) or match(_SCHEDULED_WIDE, text),
    }


# ─── Shipping point ───────────────────────────────────────────

_SP_OUTER = re.compile(
    r'Shipping\s*Point[.:\-]?\s*([\s\S]*?)'
    r'(?=\n\s*(?:Consignee|Delivery\s*Address|Notify|Goods\s*Information|B/L|HS\s*Code)|\Z)',
    re.I,
)
_SP_UNLABELLED = re.compile(
    r'Shipping\s*Point(?:\s*address)?[.:\-]?\s*([\s\S]*?)'
    r'(?=\n\s*(?:Way of Forwarding|Delivery Terms|PRODUCT|Delivery Address|Consignee|Customer))',
    re.I,
)
_SP_LABELS = {
    "street": re.compile(r'^\s*Street\b', re.I),
    "postal": re.compile(r'^\s*Postal(?:\s*Code)?\b', re.I),
    "city": re.compile(r'^\s*City\b', re.I),
    "country": re.compile(r'^\s*Country\b', re.I),
    "wof": re.compile(r'^\s*Way\s*of\s*Forwarding\b', re.I),
    "terms": re.compile(r'^\s*(?:Delivery\s*Terms|Incoterms)\b', re.I),
}
_WOF_TAIL = re.compile(r'\bWay\s*of\s*Forwarding.*$', re.I)


def extract_shipping_point(text: str) -> dict[str, str]:
    """
    Labelled Street/Postal/City/Country lines when the block has them,
    otherwise the unlabelled address split.
    """
    labelled = parse_labeled_fields(match(_SP_OUTER, text), _SP_LABELS)

    street = strip_prefix(labelled.get("street", ""))
    postal = strip_prefix(labelled.get("postal", ""))
    city = strip_prefix(labelled.get("city", ""))
    country = strip_prefix(labelled.get("country", ""))

    if not street and not city:
        sp = parse_shipping_point(match(_SP_UNLABELLED, text))
        street = street or sp["street"]
        postal = postal or sp["postal"]
        city = city or sp["city"]
        country = country or sp["country"]

    street = strip_prefix(_WOF_TAIL.sub('', street))

    way_of_forwarding = strip_prefix(
        labelled.get("wof")
        or grab_near(re.compile(r'Way\s*of\s*Forwarding', re.I), _ANY_LINE, text, 140)
    )
    delivery_terms = strip_prefix(
        labelled.get("terms")
        or grab_near(re.compile(r'(?:Delivery\s*Terms|Incoterms)', re.I), _ANY_LINE, text, 100)
    )

    return {
        "shipping_street": street,
        "shipping_postal": postal,
        "shipping_city": city,
        "shipping_country": country,
        "way_of_forwarding": way_of_forwarding,
        "delivery_terms": delivery_terms,
    }


# ─── Carrier ──────────────────────────────────────────────────

_CARRIER_LABEL = re.compile(r'CARRIER\s+NOTIFICATION\s+TO[:\s]*', re.I)


def extract_carrier(text: str, profile: DocumentProfile = DEFAULT_PROFILE) -> str:
    m = _CARRIER_LABEL.search(text)
    if m:
        return sanitize_carrier_block(text[m.end():m.start() + 600])
    if not profile.carrier_fallback:
        return ""
    fb = re.search(rf'({re.escape(profile.carrier_fallback)}[\s\S]{{0,260}})', text, re.I)
    return sanitize_carrier_block(fb.group(1) if fb else "")


# ─── Consignee ────────────────────────────────────────────────

_CONSIGNEE_TO_CUSTOMER = re.compile(r'(?:Delivery\s*Address|Consignee)[.:\-]?\s*([\s\S]*?)\n\s*Customer\s*No', re.I)
_CONSIGNEE_LABEL = re.compile(r'(?:Delivery\s*Address|Consignee)[.:\-]?\s*', re.I)
_CONSIGNEE_STOPS = [
    re.compile(p, re.I) for p in (
        r'Customer\s*No', r'Notify', r'Marks', r'Way of', r'Shipping\s*Point', r'Delivery\s*Terms',
    )
]


def _any_of(words: list[str]) -> Optional[re.Pattern]:
    if not words:
        return None
    return re.compile("|".join(re.escape(w) for w in words), re.I)


def extract_consignee(text: str, profile: DocumentProfile = DEFAULT_PROFILE) -> str:
    """
    Delivery address block with the shipper's own lines removed. If a
    shipper site still leaks in, a later, clean consignee occurrence wins.
    """
    block = match(_CONSIGNEE_TO_CUSTOMER, text) or grab_block(_CONSIGNEE_LABEL, _CONSIGNEE_STOPS, text, 12)
    if not block:
        return ""

    markers = _any_of(profile.shipper_markers)
    banned = re.compile(r'^(?:Buyer|VAT\s*No\.?)$', re.I)
    lines = [
        line for line in clean_lines(block)
        if not banned.search(line) and not (markers and markers.search(line))
    ]
    address = '\n'.join(lines)

    sites = _any_of(profile.shipper_sites)
    if sites and sites.search(address):
        for mm in _CONSIGNEE_LABEL.finditer(text):
            candidate = '\n'.join(clean_lines(text[mm.end():mm.end() + 300]))
            if not sites.search(candidate) and len(candidate) > 10:
                address = candidate
                break

    return clean(address)


# ─── Customer ─────────────────────────────────────────────────

_VAT_RE = re.compile(r'\bVAT\s*No\.?\s*[:\-]?\s*([A-Z]{1,3}[- ]?\d[\d\- ]{4,})', re.I)


def extract_customer(
    text: str,
    shipper_phone: str = "",
    profile: DocumentProfile = DEFAULT_PROFILE,
) -> dict[str, str]:
    customer_email = find_email(grab_near(re.compile(r'Customer\s*Email', re.I), _ANY_LINE, text, 140))
    domain = customer_email.rsplit('@', 1)[-1].lower() if customer_email else ""
    if domain and domain in {d.lower() for d in profile.shipper_email_domains}:
        customer_email = ""

    customer_phone = strip_prefix(grab_near(re.compile(r'Customer\s*Phone\s*Number', re.I), _ANY_LINE, text, 80))
    if same_phone(customer_phone, shipper_phone):
        customer_phone = ""

    return {
        "customer_no": strip_prefix(match(re.compile(r'Customer\s*No[.:\-]?\s*([^\n]+)', re.I), text)),
        "customer_po": strip_prefix(match(re.compile(r'Customer\s*PO\s*No[.:\-]?\s*([^\n]+)', re.I), text)),
        "customer_contact": strip_prefix(grab_near(re.compile(r'Customer\s*Contact', re.I), _ANY_LINE, text, 120)),
        "customer_phone": customer_phone,
        "customer_email": customer_email,
        "vat_no": re.sub(r'\s+', '', match(_VAT_RE, text)),
    }


# ─── Notify parties ───────────────────────────────────────────

_NOTIFY_STOPS = [
    re.compile(p, re.I) for p in (
        r'Notify\s*2', r'Notify\s*1', r'Goods\s*Information', r'B/L', r'HS\s*Code',
        r'Customer', r'Order', r'Shipping\s*Point',
    )
]
_NOTIFY_LABELS = {
    1: re.compile(r'Notify\s*1[.:\-]?\s*', re.I),
    2: re.compile(r'Notify\s*2[.:\-]?\s*', re.I),
}


def _block_until(label: str, stops: list[str], profile: DocumentProfile) -> re.Pattern:
    """
    Lazy block after `label` that ends before the first line starting with
    a stop label (or the shipper's own name), or at end of text.
    """
    alternatives = stops + [re.escape(m) for m in profile.shipper_markers[:1]]
    return re.compile(
        label + r'[.:\-]?\s*([\s\S]*?)(?=\n\s*(?:' + "|".join(alternatives) + r')|\Z)',
        re.I,
    )


def extract_notify(text: str, which: int, profile: DocumentProfile = DEFAULT_PROFILE) -> dict[str, str]:
    """Notify party 1 or 2 as address / email / phone."""
    stops = list(_NOTIFY_STOPS)
    markers = _any_of(profile.shipper_markers[:1])
    if markers:
        stops.append(markers)

    block = grab_block(_NOTIFY_LABELS[which], stops, text, 12)
    if not block:
        if which == 1:
            fallback = _block_until(r'Notify', [r'MARKS\s*TEXT', r'NOTIFY\s*2', r'ORDER\s*No', r'B/L', r'HS\s*CODE'], profile)
        else:
            fallback = _block_until(r'NOTIFY\s*2', [r'PLEASE\s+ISSUE', r'B/L', r'HS\s*CODE', r'MARKS'], profile)
        block = match(fallback, text)

    party = split_party_lines(clean_lines(block))
    prefix = f"notify{which}_"
    return {prefix + k: v for k, v in party.items()}


# ─── Remarks & codes ──────────────────────────────────────────

_BL_EXPRESS_RE = re.compile(r'PLEASE\s+ISSUE\s+EXPRESS\s+B/L[^\n]*', re.I)
_HS_CODE_RE = re.compile(r'HS\s*CODE[.:\-]?\s*([0-9 ]{4,})', re.I)
_ORDER_LABEL_RE = re.compile(r'ORDER\s*No[.:\-]?\s*([A-Za-z0-9/-]+)', re.I)
_PO_RE = re.compile(r'PO\s*No[.:\-]?\s*([A-Za-z0-9/ -]+)', re.I)


def extract_remarks(text: str, profile: DocumentProfile = DEFAULT_PROFILE) -> dict[str, str]:
    """B/L remarks, express-B/L instruction, marks and labelling, joined by blank lines."""
    remarks = match(_block_until(r'B/L\s*REMARKS', [r'HS\s*CODE', r'MARKS'], profile), text)
    express = match(_BL_EXPRESS_RE, text, group=0)
    marks = match(_block_until(
        r'MARKS?\s*TEXT', [r'LABELLING', r'Notify', r'B/L', r'HS\s*CODE', r'Goods'], profile,
    ), text)
    labelling = match(_block_until(
        r'LABELLING', [r'ORDER\s*No', r'Notify', r'B/L', r'HS\s*CODE'], profile,
    ), text)

    parts = []
    if remarks:
        parts.append(remarks)
    if express and express not in remarks:
        parts.append(express)
    if marks:
        parts.append("MARKS TEXT:\n" + marks)
    if labelling:
        parts.append("LABELLING:\n" + labelling)

    return {
        "bl_remarks": "\n\n".join(parts).strip(),
        "hs_code": re.sub(r'\s+', '', match(_HS_CODE_RE, text)),
    }


def extract_order_refs(text: str, customer_po: str = "") -> dict[str, str]:
    """order_label, and po_no = order label, else explicit PO No, else customer PO."""
    order_label = strip_prefix(match(_ORDER_LABEL_RE, text))
    po_explicit = match(_PO_RE, text)
    return {
        "order_label": order_label,
        "po_no": strip_prefix(order_label or po_explicit or customer_po),
    }


# ─── Composition ──────────────────────────────────────────────

def extract_fields(
    raw_text: str,
    profile: DocumentProfile = DEFAULT_PROFILE,
    today: Optional[date] = None,
) -> ExtractedRecord:
    """
    Run every rule over the text and assemble the typed record.
    Confidence and warnings are filled in by the confidence scorer.
    """
    text = normalize_text(raw_text)

    fields: dict = {}
    fields.update(extract_header(text))
    fields.update(extract_identifiers(text))
    fields.update(extract_shipping_point(text))
    fields["carrier_to"] = extract_carrier(text, profile)
    fields["consignee_address"] = extract_consignee(text, profile)
    fields.update(extract_customer(text, fields["shipper_phone"], profile))
    fields.update(extract_notify(text, 1, profile))
    fields.update(extract_notify(text, 2, profile))
    fields.update(extract_remarks(text, profile))
    fields.update(extract_order_refs(text, fields["customer_po"]))
    fields.update(extract_totals(text))
    fields["signature_name"] = ""
    fields["signature_date"] = (today or date.today()).isoformat()

    record = ExtractedRecord(**fields, items=extract_items(text, profile))

    logger.info(
        "fields_extracted",
        profile=profile.name,
        shipment_no=record.shipment_no,
        items=len(record.items),
        filled=sum(1 for k, v in fields.items() if v not in ("", None)),
    )
    return record
