"""Read-only attribution audit over legacy leads, legacy orders and visitors.

Every table is read in fixed-size pages by offset. A scan ends at the first
page shorter than the page size, so row counts never depend on a separate
COUNT query. Lead emails are materialized into hash sets first; orders are
then streamed once and tested for membership.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, TypeVar
from urllib.parse import parse_qs, urlsplit

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.models import LegacyLead, LegacyOrder, Visitor
from app.services.attribution import has_text

RowT = TypeVar("RowT")

_UTM_MARKERS = {
    "withUtmSource": "utm_source=",
    "withUtmMedium": "utm_medium=",
    "withUtmCampaign": "utm_campaign=",
}
_CENT = Decimal("0.01")


@dataclass(frozen=True)
class AuditOptions:
    page_size: int = 1000
    since: date | None = None
    top_referrers_limit: int = 20
    sample_urls_limit: int = 10

    @classmethod
    def from_settings(cls, since: date | None = None) -> AuditOptions:
        return cls(
            page_size=settings.audit_page_size,
            since=since,
            top_referrers_limit=settings.audit_top_referrers_limit,
            sample_urls_limit=settings.audit_sample_urls_limit,
        )


def paginate(
    fetch_page: Callable[[int, int], Sequence[RowT]],
    page_size: int,
) -> Iterator[RowT]:
    if page_size < 1:
        raise ValueError("page_size must be positive")
    offset = 0
    while True:
        page = fetch_page(offset, page_size)
        yield from page
        if len(page) < page_size:
            return
        offset += page_size


def scan(session: Session, stmt: Select, page_size: int) -> Iterator[Any]:
    def fetch_page(offset: int, limit: int) -> Sequence[Any]:
        return session.execute(stmt.offset(offset).limit(limit)).all()

    return paginate(fetch_page, page_size)


@dataclass
class LeadIndex:
    """Lower-cased lead emails, partitioned by click-identifier presence."""

    all_emails: set[str] = field(default_factory=set)
    gclid_emails: set[str] = field(default_factory=set)
    fbclid_emails: set[str] = field(default_factory=set)

    def add(self, email: str | None, *, gclid: bool, fbclid: bool) -> None:
        if not has_text(email):
            return
        key = email.lower()
        self.all_emails.add(key)
        if gclid:
            self.gclid_emails.add(key)
        if fbclid:
            self.fbclid_emails.add(key)


def count_utm_markers(url: str, counters: Counter) -> None:
    for counter_name, marker in _UTM_MARKERS.items():
        if marker in url:
            counters[counter_name] += 1


def extract_referrer_labels(url: str) -> list[str]:
    """Return ``ref:<value>`` / ``utm:<value>`` labels for a URL, or [] if it does not parse."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return []
    if not parts.scheme or not parts.netloc:
        return []
    params = parse_qs(parts.query)
    labels = []
    ref = _first_param(params, "ref") or _first_param(params, "referrer")
    if ref:
        labels.append(f"ref:{ref}")
    utm_source = _first_param(params, "utm_source")
    if utm_source:
        labels.append(f"utm:{utm_source}")
    return labels


def _first_param(params: dict[str, list[str]], name: str) -> str | None:
    values = params.get(name)
    if not values:
        return None
    return values[0] or None


def rank_referrers(histogram: Counter, limit: int) -> list[dict[str, Any]]:
    ranked = sorted(histogram.items(), key=lambda item: (-item[1], item[0]))
    return [{"source": label, "count": count} for label, count in ranked[:limit]]


def _money(value: Decimal) -> float:
    return float(value.quantize(_CENT))


def _scan_leads(session: Session, options: AuditOptions) -> tuple[dict, LeadIndex, Counter, list[str]]:
    stmt = select(
        LegacyLead.email,
        LegacyLead.gclid,
        LegacyLead.fbclid,
        LegacyLead.source_url,
        LegacyLead.landing_page,
    ).order_by(LegacyLead.id)
    if options.since is not None:
        stmt = stmt.where(LegacyLead.entry_date >= options.since)

    counters: Counter = Counter()
    referrers: Counter = Counter()
    index = LeadIndex()
    sample_urls: list[str] = []
    for row in scan(session, stmt, options.page_size):
        counters["total"] += 1
        has_gclid = has_text(row.gclid)
        has_fbclid = has_text(row.fbclid)
        counters["withGclid"] += has_gclid
        counters["withFbclid"] += has_fbclid
        counters["withLandingPage"] += has_text(row.landing_page)
        index.add(row.email, gclid=has_gclid, fbclid=has_fbclid)

        if row.source_url is None:
            continue
        # Legacy rows keep UTM data only inside the raw URL.
        count_utm_markers(row.source_url, counters)
        referrers.update(extract_referrer_labels(row.source_url))
        if has_text(row.source_url):
            counters["withSourceUrl"] += 1
            if len(sample_urls) < options.sample_urls_limit:
                sample_urls.append(row.source_url)

    leads = {
        name: counters[name]
        for name in (
            "total",
            "withGclid",
            "withFbclid",
            "withSourceUrl",
            "withLandingPage",
            *_UTM_MARKERS,
        )
    }
    return leads, index, referrers, sample_urls


def _scan_orders(session: Session, options: AuditOptions, index: LeadIndex) -> tuple[dict, dict]:
    stmt = select(LegacyOrder.email, LegacyOrder.total).order_by(LegacyOrder.id)
    if options.since is not None:
        stmt = stmt.where(LegacyOrder.order_date >= options.since)

    counts: Counter = Counter()
    revenue = {
        name: Decimal(0)
        for name in ("total", "fromLeads", "fromGclidLeads", "fromFbclidLeads", "direct")
    }
    for row in scan(session, stmt, options.page_size):
        amount = Decimal(row.total) if row.total is not None else Decimal(0)
        counts["total"] += 1
        revenue["total"] += amount
        email = row.email.lower() if has_text(row.email) else None
        if email is None or email not in index.all_emails:
            counts["directOrders"] += 1
            revenue["direct"] += amount
            continue
        counts["fromLeads"] += 1
        revenue["fromLeads"] += amount
        if email in index.gclid_emails:
            counts["fromGclidLeads"] += 1
            revenue["fromGclidLeads"] += amount
        if email in index.fbclid_emails:
            counts["fromFbclidLeads"] += 1
            revenue["fromFbclidLeads"] += amount

    orders = {
        name: counts[name]
        for name in ("total", "fromLeads", "fromGclidLeads", "fromFbclidLeads", "directOrders")
    }
    return orders, {name: _money(value) for name, value in revenue.items()}


def _scan_visitors(session: Session, options: AuditOptions) -> dict:
    stmt = select(Visitor.first_gclid, Visitor.first_fbclid, Visitor.customer_id).order_by(Visitor.id)
    counts: Counter = Counter()
    for row in scan(session, stmt, options.page_size):
        counts["total"] += 1
        counts["withGclid"] += has_text(row.first_gclid)
        counts["withFbclid"] += has_text(row.first_fbclid)
        counts["identified"] += row.customer_id is not None
    return {name: counts[name] for name in ("total", "withGclid", "withFbclid", "identified")}


def build_attribution_audit(session: Session, options: AuditOptions | None = None) -> dict:
    options = options or AuditOptions.from_settings()
    generated_at = datetime.now(timezone.utc)

    leads, index, referrers, sample_urls = _scan_leads(session, options)
    orders, revenue = _scan_orders(session, options, index)
    visitors = _scan_visitors(session, options)

    return {
        "generatedAt": generated_at.isoformat(),
        "since": options.since.isoformat() if options.since else None,
        "leads": leads,
        "orders": orders,
        "revenue": revenue,
        "visitors": visitors,
        "topReferrers": rank_referrers(referrers, options.top_referrers_limit),
        "sampleUrls": sample_urls,
    }
