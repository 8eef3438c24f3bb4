import unittest
from collections import Counter
from datetime import date
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.base import Base
from app.db.models import LegacyLead, LegacyOrder, Visitor
from app.services.attribution_audit import (
    AuditOptions,
    LeadIndex,
    build_attribution_audit,
    extract_referrer_labels,
    paginate,
    rank_referrers,
)


class PaginateTests(unittest.TestCase):
    def _run(self, total_rows: int, page_size: int) -> tuple[list[int], list[tuple[int, int]]]:
        rows = list(range(total_rows))
        calls: list[tuple[int, int]] = []

        def fetch_page(offset: int, limit: int) -> list[int]:
            calls.append((offset, limit))
            return rows[offset : offset + limit]

        return list(paginate(fetch_page, page_size)), calls

    def test_exact_multiple_needs_one_extra_empty_fetch(self) -> None:
        seen, calls = self._run(total_rows=6, page_size=2)

        self.assertEqual(seen, list(range(6)))
        self.assertEqual(calls, [(0, 2), (2, 2), (4, 2), (6, 2)])

    def test_remainder_stops_on_short_page(self) -> None:
        seen, calls = self._run(total_rows=7, page_size=3)

        self.assertEqual(seen, list(range(7)))
        self.assertEqual(calls, [(0, 3), (3, 3), (6, 3)])

    def test_empty_table_is_one_fetch(self) -> None:
        seen, calls = self._run(total_rows=0, page_size=5)

        self.assertEqual(seen, [])
        self.assertEqual(len(calls), 1)

    def test_page_size_must_be_positive(self) -> None:
        with self.assertRaises(ValueError):
            list(paginate(lambda offset, limit: [], 0))


class ReferrerHelpersTests(unittest.TestCase):
    def test_ref_and_utm_source_are_separate_labels(self) -> None:
        labels = extract_referrer_labels("https://site/?utm_source=google&ref=abc")
        self.assertEqual(labels, ["ref:abc", "utm:google"])

    def test_referrer_param_is_used_when_ref_is_absent(self) -> None:
        self.assertEqual(extract_referrer_labels("https://site/p?referrer=partner"), ["ref:partner"])

    def test_unparsable_or_relative_urls_yield_nothing(self) -> None:
        self.assertEqual(extract_referrer_labels("http://[broken/?ref=x"), [])
        self.assertEqual(extract_referrer_labels("/landing?ref=x"), [])
        self.assertEqual(extract_referrer_labels(""), [])

    def test_rank_referrers_orders_by_count_then_label(self) -> None:
        histogram = Counter({"ref:b": 2, "utm:a": 2, "ref:c": 5, "utm:z": 1})

        self.assertEqual(
            rank_referrers(histogram, 3),
            [
                {"source": "ref:c", "count": 5},
                {"source": "ref:b", "count": 2},
                {"source": "utm:a", "count": 2},
            ],
        )

    def test_lead_index_lowercases_and_skips_blank_emails(self) -> None:
        index = LeadIndex()
        index.add("A@X.com", gclid=True, fbclid=False)
        index.add("", gclid=True, fbclid=True)
        index.add(None, gclid=False, fbclid=True)

        self.assertEqual(index.all_emails, {"a@x.com"})
        self.assertEqual(index.gclid_emails, {"a@x.com"})
        self.assertEqual(index.fbclid_emails, set())


class AttributionAuditTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        self.SessionLocal = sessionmaker(bind=self.engine)
        Base.metadata.create_all(self.engine)

    def tearDown(self) -> None:
        Base.metadata.drop_all(self.engine)
        self.engine.dispose()

    def _audit(self, **options) -> dict:
        options.setdefault("page_size", 2)
        with self.SessionLocal() as session:
            return build_attribution_audit(session, AuditOptions(**options))

    def test_orders_are_matched_to_leads_case_insensitively(self) -> None:
        with self.SessionLocal() as session:
            session.add_all(
                [
                    LegacyLead(email="a@x.com", gclid="g1"),
                    LegacyLead(email="b@x.com"),
                    LegacyOrder(email="A@X.com", total=Decimal("120.50")),
                    LegacyOrder(email="c@x.com", total=Decimal("30.25")),
                ]
            )
            session.commit()

        report = self._audit()

        self.assertEqual(
            report["orders"],
            {"total": 2, "fromLeads": 1, "fromGclidLeads": 1, "fromFbclidLeads": 0, "directOrders": 1},
        )
        self.assertEqual(
            report["revenue"],
            {
                "total": 150.75,
                "fromLeads": 120.5,
                "fromGclidLeads": 120.5,
                "fromFbclidLeads": 0.0,
                "direct": 30.25,
            },
        )

    def test_orders_without_email_or_total_count_as_direct(self) -> None:
        with self.SessionLocal() as session:
            session.add_all([LegacyOrder(email=None, total=Decimal("10.00")), LegacyOrder(email="", total=None)])
            session.commit()

        report = self._audit()

        self.assertEqual(report["orders"]["directOrders"], 2)
        self.assertEqual(report["revenue"]["direct"], 10.0)

    def test_utm_substring_counts_survive_malformed_peer_urls(self) -> None:
        with self.SessionLocal() as session:
            session.add_all(
                [
                    LegacyLead(email="a@x.com", source_url="https://site/?utm_source=google&ref=abc"),
                    LegacyLead(email="b@x.com", source_url="http://[broken/?utm_medium=email&ref=zzz"),
                    LegacyLead(email="c@x.com", source_url="https://site/?ref=abc&utm_campaign=spring"),
                    LegacyLead(email="d@x.com", source_url=""),
                    LegacyLead(email="e@x.com", source_url=None, landing_page="/quote", fbclid="fb-1"),
                ]
            )
            session.commit()

        report = self._audit()

        leads = report["leads"]
        self.assertEqual(leads["total"], 5)
        self.assertEqual(leads["withUtmSource"], 1)
        self.assertEqual(leads["withUtmMedium"], 1)
        self.assertEqual(leads["withUtmCampaign"], 1)
        self.assertEqual(leads["withSourceUrl"], 3)
        self.assertEqual(leads["withLandingPage"], 1)
        self.assertEqual(leads["withFbclid"], 1)
        self.assertEqual(leads["withGclid"], 0)
        self.assertEqual(
            report["topReferrers"],
            [{"source": "ref:abc", "count": 2}, {"source": "utm:google", "count": 1}],
        )
        self.assertEqual(
            report["sampleUrls"],
            [
                "https://site/?utm_source=google&ref=abc",
                "http://[broken/?utm_medium=email&ref=zzz",
                "https://site/?ref=abc&utm_campaign=spring",
            ],
        )

    def test_row_count_is_exact_when_table_size_is_a_page_multiple(self) -> None:
        with self.SessionLocal() as session:
            session.add_all([LegacyLead(email=f"lead{i}@x.com") for i in range(6)])
            session.commit()

        self.assertEqual(self._audit(page_size=3)["leads"]["total"], 6)
        self.assertEqual(self._audit(page_size=4)["leads"]["total"], 6)

    def test_limits_truncate_referrers_and_sample_urls(self) -> None:
        with self.SessionLocal() as session:
            session.add_all(
                [LegacyLead(source_url=f"https://site/?ref=partner{i}") for i in range(5)]
            )
            session.commit()

        report = self._audit(top_referrers_limit=2, sample_urls_limit=3)

        self.assertEqual(len(report["topReferrers"]), 2)
        self.assertEqual(report["topReferrers"][0], {"source": "ref:partner0", "count": 1})
        self.assertEqual(len(report["sampleUrls"]), 3)

    def test_since_filters_leads_and_orders_but_not_visitors(self) -> None:
        with self.SessionLocal() as session:
            session.add_all(
                [
                    LegacyLead(email="old@x.com", entry_date=date(2020, 1, 1)),
                    LegacyLead(email="new@x.com", entry_date=date(2026, 5, 1)),
                    LegacyLead(email="undated@x.com", entry_date=None),
                    LegacyOrder(email="old@x.com", total=Decimal("5"), order_date=date(2020, 2, 1)),
                    LegacyOrder(email="new@x.com", total=Decimal("7"), order_date=date(2026, 5, 2)),
                    Visitor(fingerprint="fp-1"),
                ]
            )
            session.commit()

        report = self._audit(since=date(2026, 1, 1))

        self.assertEqual(report["since"], "2026-01-01")
        self.assertEqual(report["leads"]["total"], 1)
        self.assertEqual(report["orders"]["total"], 1)
        self.assertEqual(report["orders"]["fromLeads"], 1)
        self.assertEqual(report["revenue"]["total"], 7.0)
        self.assertEqual(report["visitors"]["total"], 1)

    def test_visitor_section_counts_click_ids_and_identified(self) -> None:
        with self.SessionLocal() as session:
            session.add_all(
                [
                    Visitor(fingerprint="fp-1", first_gclid="g-1"),
                    Visitor(fingerprint="fp-2", first_fbclid="fb-1"),
                    Visitor(fingerprint="fp-3", first_gclid=""),
                ]
            )
            session.commit()

        report = self._audit()

        self.assertEqual(
            report["visitors"],
            {"total": 3, "withGclid": 1, "withFbclid": 1, "identified": 0},
        )

    def test_empty_store_reports_zeroes(self) -> None:
        report = self._audit()

        self.assertIsNone(report["since"])
        self.assertEqual(report["leads"]["total"], 0)
        self.assertEqual(report["orders"]["total"], 0)
        self.assertEqual(report["revenue"]["total"], 0.0)
        self.assertEqual(report["topReferrers"], [])
        self.assertEqual(report["sampleUrls"], [])
        self.assertIn("generatedAt", report)


if __name__ == "__main__":
    unittest.main()
