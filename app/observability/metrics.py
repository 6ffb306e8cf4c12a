"""
Prometheus metrics for the carrier notification review service.
"""

from prometheus_client import Counter, Histogram


# ── Uploads ──────────────────────────────────────────────────
uploads_total = Counter(
    "uploads_total",
    "Total document uploads by outcome",
    ["outcome"],
)

upload_duration_seconds = Histogram(
    "upload_duration_seconds",
    "Time from upload to draft creation",
    buckets=[0.5, 1, 5, 10, 30, 60, 120, 300],
)

# ── Pipeline Stages ──────────────────────────────────────────
pipeline_stage_duration_seconds = Histogram(
    "pipeline_stage_duration_seconds",
    "Time per pipeline stage",
    ["stage"],
    buckets=[0.01, 0.1, 0.5, 1, 5, 10, 30, 60],
)

# ── Text Recovery ────────────────────────────────────────────
text_candidates_total = Counter(
    "text_candidates_total",
    "Text recovery strategy results",
    ["source", "outcome"],
)

winning_source_total = Counter(
    "winning_source_total",
    "Which text recovery strategy won candidate scoring",
    ["source"],
)

extraction_cache_hits_total = Counter(
    "extraction_cache_hits_total",
    "Uploads served from the fingerprint cache",
)

# ── Extraction ───────────────────────────────────────────────
confidence_scores = Histogram(
    "confidence_scores",
    "Distribution of extracted record confidence scores",
    buckets=[5, 10, 20, 30, 40, 50, 60, 70, 80, 90, 100],
)

line_items_extracted_total = Counter(
    "line_items_extracted_total",
    "Total line items extracted from documents",
)

reconciliation_total = Counter(
    "reconciliation_total",
    "External reconciliation attempts by outcome",
    ["outcome"],
)

# ── Review ───────────────────────────────────────────────────
draft_transitions_total = Counter(
    "draft_transitions_total",
    "Draft lifecycle operations",
    ["operation"],
)
