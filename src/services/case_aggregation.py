"""
Case Aggregation - per-customer views derived from the event log.

Nothing here writes. Every call regroups the raw events:

1. filter by follower and inclusive date range
2. drop events without a phone
3. group by phone, stable-sort each group by (date, created_at)
4. the last event of a group supplies the whole current snapshot
5. order cases by last_update_date, newest first
"""

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from src.core.reason_codes import format_reason_display
from src.core.timeutils import format_month, get_zone, month_bounds
from src.models.schemas import CaseHistoryEntry, CustomerCase, InteractionEvent
from src.services.event_repository import LeadEventRepository

logger = logging.getLogger(__name__)


def _chronological_key(event: InteractionEvent):
    created = event.created_at.timestamp() if event.created_at else float("-inf")
    return (event.date, created)


def aggregate_cases(
    events: Iterable[InteractionEvent],
    follower: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> List[CustomerCase]:
    """
    Collapses events into one CustomerCase per phone.

    `events` must be in arrival order; ties on (date, created_at) keep it.
    """
    groups: Dict[str, List[InteractionEvent]] = {}

    for event in events:
        if follower is not None and event.follower != follower:
            continue
        if start_date is not None and event.date < start_date:
            continue
        if end_date is not None and event.date > end_date:
            continue

        phone = event.customer.phone
        if not phone:
            continue

        groups.setdefault(phone, []).append(event)

    cases = []
    for phone, group in groups.items():
        ordered = sorted(group, key=_chronological_key)
        first, last = ordered[0], ordered[-1]

        history = [
            CaseHistoryEntry(
                date=event.date,
                status=event.reason_code if event.reason_code is not None else event.status_text,
                reason_code=event.reason_code,
                note=event.note,
                created_at=event.created_at,
            )
            for event in ordered
        ]

        cases.append(CustomerCase(
            phone=phone,
            name=last.customer.name,
            page=last.page,
            follower=last.follower,
            first_contact_date=first.date,
            last_update_date=last.date,
            current_status=last.reason_code if last.reason_code is not None else last.status_text,
            current_reason_code=last.reason_code,
            current_status_text=last.status_text,
            history=history,
            total_events=len(ordered),
        ))

    return sorted(cases, key=lambda case: case.last_update_date, reverse=True)


def format_phone(phone: str) -> str:
    """'093724678' -> '093 724 678'. Other lengths are returned untouched."""
    if len(phone) in (9, 10) and phone.isdigit():
        return f"{phone[:3]} {phone[3:6]} {phone[6:]}"
    return phone


def status_counts(cases: List[CustomerCase]) -> Dict[str, int]:
    counter = Counter(
        format_reason_display(case.current_reason_code, case.current_status_text)
        for case in cases
    )
    return dict(sorted(counter.items()))


@dataclass
class ReportRange:
    start: datetime
    end: datetime
    # False when the range came from bare dates, so only dates are compared
    has_time: bool = False

    @property
    def start_date(self) -> date:
        return self.start.date()

    @property
    def end_date(self) -> date:
        return self.end.date()

    def describe(self) -> str:
        fmt = "%Y-%m-%d %H:%M" if self.has_time else "%Y-%m-%d"
        if self.start_date == self.end_date and not self.has_time:
            return self.start.strftime(fmt)
        return f"{self.start.strftime(fmt)} to {self.end.strftime(fmt)}"


class CaseService:
    """Query side: customer lists, range reports and report endpoint payloads."""

    def __init__(self, repository: LeadEventRepository, timezone: Optional[str] = None):
        self.repository = repository
        self.timezone = timezone

    def cases_for_month(self, month: str, follower: Optional[str] = None) -> List[CustomerCase]:
        start, end = month_bounds(month)
        events = self.repository.list_events(follower=follower, start_date=start, end_date=end)
        return aggregate_cases(events, follower=follower, start_date=start, end_date=end)

    def build_customers_report(self, follower: str, month: str) -> str:
        cases = self.cases_for_month(month, follower)
        logger.info(f"📋 Customer list for {follower} / {month}: {len(cases)} case(s)")

        header = [
            "Customer List",
            f"Follower: {follower}",
            f"Month: {format_month(month)}",
        ]

        if not cases:
            return "\n".join(header + ["", "No customers found."])

        header.append(f"Total: {len(cases)}")

        blocks = []
        for index, case in enumerate(cases, start=1):
            lines = [f"{index}) {case.name or 'Unknown'}"]
            lines.append(f"Phone: {format_phone(case.phone)}")
            if case.page:
                lines.append(f"Page: {case.page}")
            lines.append(f"Date: {case.last_update_date.isoformat()}")
            lines.append(f"Status: {format_reason_display(case.current_reason_code, case.current_status_text)}")
            blocks.append("\n".join(lines))

        return "\n".join(header) + "\n\n" + "\n\n".join(blocks)

    def events_in_range(self, report_range: ReportRange, follower: Optional[str] = None) -> List[InteractionEvent]:
        events = self.repository.list_events(
            follower=follower,
            start_date=report_range.start_date,
            end_date=report_range.end_date,
        )
        if not report_range.has_time:
            return events

        zone = get_zone(self.timezone)
        start = report_range.start.replace(tzinfo=zone)
        end = report_range.end.replace(tzinfo=zone)
        return [
            event for event in events
            if event.created_at is not None and start <= event.created_at.astimezone(zone) <= end
        ]

    def build_range_report(self, report_range: ReportRange, follower: Optional[str] = None) -> str:
        events = self.events_in_range(report_range, follower)
        cases = aggregate_cases(events)
        logger.info(f"📊 Range report {report_range.describe()} for {follower or 'all'}: {len(events)} event(s)")

        lines = [
            "Sales Report",
            f"Follower: {follower or 'All'}",
            f"Range: {report_range.describe()}",
        ]

        if not events:
            return "\n".join(lines + ["", "No events found."])

        lines += [
            f"Events: {len(events)}",
            f"Cases: {len(cases)}",
        ]

        counts = status_counts(cases)
        if counts:
            lines += ["", "By status:"]
            lines += [f"{label}: {count}" for label, count in counts.items()]

        if cases:
            lines += ["", "Cases:"]
            for index, case in enumerate(cases, start=1):
                status = format_reason_display(case.current_reason_code, case.current_status_text)
                lines.append(
                    f"{index}) {case.name or 'Unknown'} - {format_phone(case.phone)} - {status} ({case.last_update_date.isoformat()})"
                )

        return "\n".join(lines)

    def daily_summary(self, day: date) -> Dict[str, Any]:
        events = self.repository.list_events(start_date=day, end_date=day)
        cases = aggregate_cases(events)
        return {
            "date": day.isoformat(),
            "total_events": len(events),
            "total_cases": len(cases),
            "by_status": status_counts(cases),
            "events": [event.to_record() for event in events],
        }

    def monthly_summary(self, month: str) -> Dict[str, Any]:
        cases = self.cases_for_month(month)
        by_follower = Counter(case.follower or "Unknown" for case in cases)
        return {
            "month": month,
            "total_cases": len(cases),
            "total_events": sum(case.total_events for case in cases),
            "by_status": status_counts(cases),
            "by_follower": dict(sorted(by_follower.items())),
            "cases": [case.model_dump(mode="json") for case in cases],
        }
