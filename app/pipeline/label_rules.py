"""
Label-anchored extraction primitives.

Carrier letters are loose key/value layouts, not fixed grids. A value may sit
on the same line as its label, on the next non-blank line, or a little
further down. These helpers find a label and look a bounded distance past it
instead of parsing the whole page.

All helpers are pure (text in, string/dict out) and return "" on a miss.
"""

import re
from typing import Iterable, Optional, Pattern

# ─── Normalisation ────────────────────────────────────────────

_DASHES_RE = re.compile('[\u2010\u2013\u2014\u2212]')
_DQUOTES_RE = re.compile('[\u201c\u201d]')
_SQUOTES_RE = re.compile('[\u2018\u2019]')
_HSPACE_RUN_RE = re.compile(r'[^\S\n]{2,}|\t')
_TRAILING_SPACE_RE = re.compile(r'[ \t]+\n')
_PREFIX_RE = re.compile(r'^[\s:!•._-]+')
_NON_DIGITS_RE = re.compile(r'\D+')


def clean(s: Optional[str]) -> str:
    """Normalise unicode punctuation and horizontal whitespace, then trim."""
    s = (s or "").replace('\r', '')
    s = s.replace('\u00a0', ' ')
    s = _DASHES_RE.sub('-', s)
    s = _DQUOTES_RE.sub('"', s)
    s = _SQUOTES_RE.sub("'", s)
    s = s.replace('\uff1a', ':')
    s = _HSPACE_RUN_RE.sub(' ', s)
    s = _TRAILING_SPACE_RE.sub('\n', s)
    return s.strip()


def strip_prefix(s: Optional[str]) -> str:
    """Drop leading label debris such as ': ', '- ', '• '."""
    return _PREFIX_RE.sub('', s or '').strip()


def only_digits(s: Optional[str]) -> str:
    return _NON_DIGITS_RE.sub('', s or '')


def clean_lines(block: str) -> list[str]:
    """Cleaned, non-blank lines of a block."""
    return [line for line in (clean(l) for l in (block or "").split('\n')) if line]


# ─── Scalars ──────────────────────────────────────────────────

def match(pattern: Pattern, text: str, group: int = 1) -> str:
    m = pattern.search(text or "")
    if not m:
        return ""
    return clean(m.group(group))


def grab_near(label: Pattern, value: Pattern, text: str, window: int = 120) -> str:
    """
    First value match inside `window` characters after the first label match.
    Returns group 1 when the value pattern has one, else the whole match.
    """
    m = label.search(text or "")
    if not m:
        return ""
    segment = text[m.end():m.end() + window]
    mv = value.search(segment)
    if not mv:
        return ""
    if mv.re.groups and mv.group(1) is not None:
        return clean(mv.group(1))
    return clean(mv.group(0))


# ─── Blocks ───────────────────────────────────────────────────

def grab_block(label: Pattern, stops: Iterable[Pattern], text: str, max_lines: int = 8) -> str:
    """
    Consecutive lines after a label, ending at a blank line, a stop label,
    or the line cap.
    """
    m = label.search(text or "")
    if not m:
        return ""
    stops = list(stops)
    out: list[str] = []
    for raw in text[m.end():].split('\n'):
        line = clean(raw)
        if not line:
            break
        if any(stop.search(line) for stop in stops):
            break
        out.append(line)
        if len(out) >= max_lines:
            break
    return '\n'.join(out)


def parse_labeled_fields(block: str, labels: dict[str, Pattern]) -> dict[str, str]:
    """
    Apply sub-label patterns line by line inside an already bounded block.

    The value is whatever follows the label on its line; when that is empty
    the next non-blank line is taken. Other sub-labels are scrubbed from the
    value so a two-column "Postal ... City ..." line does not bleed over.
    """
    res: dict[str, str] = {}
    if not block:
        return res
    lines = [clean(l) for l in block.split('\n')]
    for i, line in enumerate(lines):
        for key, rex in labels.items():
            if not rex.search(line):
                continue
            val = re.sub(r'^[\s:.-]+', '', rex.sub('', line, count=1))
            if not val:
                j = i + 1
                while j < len(lines) and not lines[j]:
                    j += 1
                if j < len(lines):
                    val = lines[j]
            for other in labels.values():
                val = other.sub('', val).strip()
            res[key] = clean(val)
    return res


# ─── Addresses ────────────────────────────────────────────────

_COUNTRY_LINE_RE = re.compile(r'^[A-Za-zÄÖÜäöüß\s-]+$')
_POSTAL_CITY_RE = re.compile(r'(\d{3,10})\s+(.+)')


def split_address(lines: list[str]) -> dict[str, str]:
    """
    Unlabelled address split.

    If the last line is alphabetic it is the country and the line before it
    is "<postal> <city>"; otherwise the last line itself is tried as
    "<postal> <city>". Whatever remains above is the street.
    """
    res = {"street": "", "postal": "", "city": "", "country": ""}
    lines = [clean(l) for l in lines if clean(l)]
    if not lines:
        return res

    last = lines[-1]
    prev = lines[-2] if len(lines) > 1 else ""
    if _COUNTRY_LINE_RE.match(last) and len(last) > 2:
        res["country"] = last
        m = _POSTAL_CITY_RE.search(prev)
        if m:
            res["postal"], res["city"] = m.group(1), m.group(2)
        res["street"] = ", ".join(lines[:-2])
    else:
        m = _POSTAL_CITY_RE.search(last)
        if m:
            res["postal"], res["city"] = m.group(1), m.group(2)
            res["street"] = ", ".join(lines[:-1])
        else:
            res["street"] = ", ".join(lines)

    return {k: clean(v) for k, v in res.items()}


def parse_shipping_point(block: str) -> dict[str, str]:
    return split_address(clean_lines(block))


_CARRIER_DROP_RE = re.compile(
    r'(Your\s*Partner|Telephone|Phone|Email|Shipment\s*No|Order\s*No|Delivery\s*No|Loading\s*Date'
    r'|Shipping\s*Point|Street|Postal|City|Country|Way\s*of\s*Forwarding|Delivery\s*Terms|Incoterms)',
    re.IGNORECASE,
)


def sanitize_carrier_block(s: str, max_lines: int = 9) -> str:
    """Keep the carrier's name/address lines; stop at the first header label."""
    out: list[str] = []
    for raw in (s or "").split('\n'):
        line = clean(raw)
        if not line:
            if out:
                break
            continue
        if _CARRIER_DROP_RE.search(line):
            break
        out.append(line)
        if len(out) >= max_lines:
            break
    return '\n'.join(out)


# ─── E-mail / phone ───────────────────────────────────────────

_AT_SPACES_RE = re.compile(r'[ \t]*@[ \t]*')
_DOMAIN_SPACES_RE = re.compile(r'@((?:[A-Za-z0-9-]+[ \t]*\.[ \t]*)+[A-Za-z]{2,})')
_EMAIL_RE = re.compile(r'\b[A-Z0-9][A-Z0-9._%+-]*@[A-Z0-9.-]+\.[A-Z]{2,}\b', re.IGNORECASE)


def normalize_email_spaces(s: Optional[str]) -> str:
    """
    OCR tends to split addresses around the '@' and dots ("sales @ acme. com").
    Only whitespace inside the domain is removed; trailing words stay apart.
    """
    s = _AT_SPACES_RE.sub('@', s or '')
    return _DOMAIN_SPACES_RE.sub(lambda m: '@' + re.sub(r'[ \t]+', '', m.group(1)), s)


def find_email(line: Optional[str]) -> str:
    m = _EMAIL_RE.search(normalize_email_spaces(line))
    return re.sub(r'^[.\-_:;]+', '', m.group(0)) if m else ""


_PHONE_LINE_RE = re.compile(r'Tel\.|Phone|^\+?\d[\d ()/.\-]*$')
_PHONE_LABEL_RE = re.compile(r'^.*?(Tel\.|Phone)\s*:?\s*', re.IGNORECASE)
_VAT_LINE_RE = re.compile(r'Vat\s*No\.', re.IGNORECASE)


def split_party_lines(lines: list[str]) -> dict[str, str]:
    """
    Sort a party block into address lines, one e-mail and one phone.
    VAT lines are dropped. The last e-mail/phone seen wins.
    """
    address: list[str] = []
    email = phone = ""
    for line in lines:
        found = find_email(line)
        if found:
            email = found
            continue
        if _PHONE_LINE_RE.search(line):
            phone = _PHONE_LABEL_RE.sub('', line, count=1)
            continue
        if _VAT_LINE_RE.search(line):
            continue
        address.append(line)
    return {"address": '\n'.join(address), "email": email, "phone": phone}


def same_phone(a: str, b: str) -> bool:
    """Phones compare equal when their digits do."""
    return bool(a) and bool(b) and only_digits(a) == only_digits(b)
