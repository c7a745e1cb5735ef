"""
KPI Intelligence

Shared helpers that turn raw KPI numbers into card text: which suppliers
are behind the issues, what kind of issues they are, and percentages
with a sensible denominator.
"""
import json
from datetime import date
from typing import Callable, Dict, List, Optional

from brandbuddy.services import records as r
from brandbuddy.utils.helpers import round_half_up, utc_now
from brandbuddy.utils.logger import log

Predicate = Callable[[Dict], bool]

PERCENTAGE_CONTEXTS = {
    "orders": "of total orders",
    "shipments": "of shipments",
    "products": "of products",
    "catalog": "of catalog",
    "items": "of items",
}

# Percentages over fewer records than this are noise
MIN_PERCENTAGE_DENOMINATOR = 10

HISTORICAL_WINDOW_DAYS = 30


def _status_contains(record: Dict, *markers: str) -> bool:
    status = r.status_of(record)
    return any(marker in status for marker in markers)


def _sla_status(record: Dict) -> str:
    return str(record.get("sla_status") or "")


def default_issue_filter(record: Dict) -> bool:
    """Delayed, cancelled, mis-received or flagged at risk"""
    return (
        _status_contains(record, "delayed")
        or r.is_cancelled(record)
        or r.has_discrepancy(record)
        or "at_risk" in _sla_status(record)
    )


DEFAULT_ISSUE_FILTERS: Dict[str, Predicate] = {
    "quantityDiscrepancy": r.has_discrepancy,
    "slaIssue": lambda rec: "at_risk" in _sla_status(rec) or "breach" in _sla_status(rec),
    "delayed": lambda rec: _status_contains(rec, "delayed", "overdue"),
    "cancelled": r.is_cancelled,
    "qualityIssue": lambda rec: (rec.get("quality_issues") or 0) > 0,
}


# ────────────────────────────────────────────
# SUPPLIER IMPACT
# ────────────────────────────────────────────


def analyze_supplier_impact(records: List[Dict], issue_filter: Predicate = default_issue_filter) -> Dict:
    """
    Count issues per supplier.

    Returns the top three suppliers by issue count (ties keep first-seen
    order), the full count map and the number of distinct suppliers hit.
    """
    counts: Dict[str, int] = {}
    for record in records:
        if not issue_filter(record):
            continue
        supplier = r.supplier_of(record)
        if supplier:
            counts[supplier] = counts.get(supplier, 0) + 1

    top = sorted(counts, key=lambda name: -counts[name])[:3]
    return {
        "topAffectedSuppliers": top,
        "supplierIssueCount": counts,
        "totalAffectedSuppliers": len(counts),
    }


# ────────────────────────────────────────────
# ISSUE CLASSIFICATION
# ────────────────────────────────────────────


def classify_operational_issues(records: List[Dict], issue_filters: Optional[Dict[str, Predicate]] = None) -> Dict:
    filters = dict(DEFAULT_ISSUE_FILTERS)
    if issue_filters:
        filters.update(issue_filters)

    return {
        "quantityDiscrepancies": sum(1 for rec in records if filters["quantityDiscrepancy"](rec)),
        "slaIssues": sum(1 for rec in records if filters["slaIssue"](rec)),
        "delayedItems": sum(1 for rec in records if filters["delayed"](rec)),
        "cancelledItems": sum(1 for rec in records if filters["cancelled"](rec)),
        "qualityIssues": sum(1 for rec in records if filters["qualityIssue"](rec)),
        "totalIssues": sum(1 for rec in records if any(check(rec) for check in filters.values())),
    }


def describe_issues(classification: Dict) -> str:
    """'quantity discrepancies, SLA breaches and delivery delays'"""
    phrases = []
    if classification.get("quantityDiscrepancies"):
        phrases.append("quantity discrepancies")
    if classification.get("slaIssues"):
        phrases.append("SLA breaches")
    if classification.get("delayedItems"):
        phrases.append("delivery delays")
    if classification.get("cancelledItems"):
        phrases.append("cancellations")

    if not phrases:
        return ""
    if len(phrases) == 1:
        return phrases[0]
    return f"{', '.join(phrases[:-1])} and {phrases[-1]}"


# ────────────────────────────────────────────
# PERCENTAGES
# ────────────────────────────────────────────


def calculate_smart_percentage(numerator: float, denominator: float, context: str = "items") -> str:
    if denominator == 0:
        return "0%"
    label = PERCENTAGE_CONTEXTS.get(context, PERCENTAGE_CONTEXTS["items"])
    return f"{100 * numerator / denominator:.1f}% {label}"


def should_show_percentage(numerator: float, denominator: float) -> bool:
    return numerator != 0 and denominator >= MIN_PERCENTAGE_DENOMINATOR


# ────────────────────────────────────────────
# BUSINESS METRICS
# ────────────────────────────────────────────


def calculate_operational_metrics(
    records: List[Dict],
    date_field: str = "created_date",
    today: Optional[date] = None
) -> Dict:
    today_key = (today or utc_now().date()).isoformat()
    today_records = sum(1 for rec in records if str(rec.get(date_field) or "")[:10] == today_key)
    historical_average = round_half_up(len(records) / HISTORICAL_WINDOW_DAYS)
    active_records = sum(
        1 for rec in records
        if rec.get("active") is not False and not r.is_cancelled(rec)
    )

    return {
        "totalRecords": len(records),
        "activeRecords": active_records,
        "todayRecords": today_records,
        "historicalAverage": historical_average,
        "performanceRatio": today_records / max(historical_average, 1),
    }


# ────────────────────────────────────────────
# KPI CONTEXT
# ────────────────────────────────────────────


def build_kpi_context_prompt(
    executive_role: str,
    domain_focus: str,
    kpi_values: Dict[str, float],
    supplier_analysis: Dict,
    issues: Dict,
    metrics: Dict,
    custom_breakdown: Optional[str] = None
) -> str:
    kpi_lines = "\n".join(f"- {name}: {value}" for name, value in kpi_values.items())
    output_shape = {
        name: {
            "percentage": "[accurate_percentage_if_meaningful]%",
            "context": "[supplier_and_issue_breakdown_context]",
            "description": "[business_friendly_description_with_percentage]",
        }
        for name in kpi_values
    }
    extra = f"\n- {custom_breakdown}" if custom_breakdown else ""

    return f"""You are a {executive_role} analyzing {domain_focus} KPIs. Provide meaningful percentage context and business explanations:

OPERATIONAL DATA:
Total Records in System: {metrics['totalRecords']}
Active Records: {metrics['activeRecords']}
Today's Activity: {metrics['todayRecords']}
Historical Daily Average: {metrics['historicalAverage']}

CURRENT KPI VALUES:
{kpi_lines}

DETAILED BREAKDOWN:
- Quantity Discrepancies: {issues['quantityDiscrepancies']} records
- SLA Issues: {issues['slaIssues']} records
- Delayed Items: {issues['delayedItems']} records
- Cancelled Items: {issues['cancelledItems']} records
- Top Affected Suppliers: {', '.join(supplier_analysis['topAffectedSuppliers'])}
- Total Affected Suppliers: {supplier_analysis['totalAffectedSuppliers']}{extra}

Calculate accurate percentages using proper denominators and provide {domain_focus}-focused business context for each KPI.

REQUIRED JSON OUTPUT:
{json.dumps(output_shape, indent=2)}"""


def fallback_kpi_context(
    kpi_values: Dict[str, float],
    supplier_analysis: Dict,
    issues: Dict,
    metrics: Dict,
    domain_focus: str
) -> Dict[str, Dict]:
    """Deterministic card text used when the LLM is unavailable"""
    total = metrics["totalRecords"]
    issue_phrase = describe_issues(issues)
    context = {}

    for name, value in kpi_values.items():
        value = value or 0
        description = f"{domain_focus} metric: {value}"
        detail = ""
        if "risk" in name.lower() and supplier_analysis["topAffectedSuppliers"]:
            description = f"Items with issues ({calculate_smart_percentage(value, total, 'items')})"
            detail = (
                f"Mainly affected by {issue_phrase} from suppliers "
                f"{', '.join(supplier_analysis['topAffectedSuppliers'])}"
            )
        context[name] = {
            "value": value,
            "description": description,
            "context": detail,
            "percentage": (
                calculate_smart_percentage(value, total, "items")
                if should_show_percentage(value, total) else None
            ),
        }
    return context


async def generate_kpi_context(
    records: List[Dict],
    kpi_values: Dict[str, float],
    executive_role: str,
    domain_focus: str,
    llm=None,
    issue_filter: Predicate = default_issue_filter,
    custom_breakdown: Optional[str] = None,
    today: Optional[date] = None
) -> Dict[str, Dict]:
    """
    KPI card context for a page.

    Asks the LLM when one is supplied and enabled; anything it returns that
    is not a JSON object falls back to the deterministic text.
    """
    supplier_analysis = analyze_supplier_impact(records, issue_filter)
    issues = classify_operational_issues(records)
    metrics = calculate_operational_metrics(records, today=today)
    log.debug(f"KPI intelligence: analyzing {len(records)} records for {domain_focus}")

    if llm is not None and llm.enabled:
        prompt = build_kpi_context_prompt(
            executive_role, domain_focus, kpi_values, supplier_analysis, issues, metrics, custom_breakdown
        )
        parsed = await llm.complete_json(prompt, max_tokens=1500, temperature=0.2)
        if isinstance(parsed, dict) and parsed:
            log.info(f"KPI intelligence: generated context for {len(parsed)} KPIs")
            return parsed
        log.warning("KPI intelligence: LLM context unavailable, using fallback")

    return fallback_kpi_context(kpi_values, supplier_analysis, issues, metrics, domain_focus)
