"""
/report flow - follower (or "all") -> day count or date range -> summary
"""
import logging
import re
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple

from src.core.rate_limit import CooldownTracker, wait_message
from src.core.state_manager import ConversationStateManager
from src.core.timeutils import local_today
from src.models.schemas import BotReply, IncomingMessage
from src.services.case_aggregation import CaseService, ReportRange

logger = logging.getLogger(__name__)

_DAY_COUNT = re.compile(r"^\d+$")
_DATE_TOKEN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_TOKEN = re.compile(r"^(\d{1,2}):(\d{2})$")

END_OF_DAY = time(23, 59, 59)


class ReportMessages:
    ASK_FOLLOWER = 'Which follower? (type a name, or "all" for everyone)'
    EXPIRED = "Report request expired. Please send /report again."
    FAILED = "Failed to generate report."

    @staticmethod
    def ask_range(max_days: int) -> str:
        return (
            f"Which period? Send a number of days (1-{max_days}), "
            "or one or two dates as YYYY-MM-DD [HH:MM]"
        )

    @staticmethod
    def invalid_range(max_days: int) -> str:
        return (
            "Invalid period. "
            f"Use a number of days (1-{max_days}) or YYYY-MM-DD [HH:MM] [YYYY-MM-DD [HH:MM]], "
            "with the start before the end."
        )


class ReportFlowStates:
    AWAITING_FOLLOWER = "awaiting_follower"
    AWAITING_RANGE = "awaiting_range"


def _parse_time(token: str) -> Optional[time]:
    match = _TIME_TOKEN.match(token)
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return time(hour, minute)


def _parse_points(tokens: List[str]) -> Optional[List[Tuple[date, Optional[time]]]]:
    points = []
    index = 0
    while index < len(tokens):
        token = tokens[index]
        if not _DATE_TOKEN.match(token):
            return None
        try:
            day = date.fromisoformat(token)
        except ValueError:
            return None

        at = None
        if index + 1 < len(tokens) and _TIME_TOKEN.match(tokens[index + 1]):
            at = _parse_time(tokens[index + 1])
            if at is None:
                return None
            index += 1

        points.append((day, at))
        index += 1

    if not 1 <= len(points) <= 2:
        return None
    return points


def parse_report_range(text: str, today: date, max_days: int = 30) -> Optional[ReportRange]:
    """
    Reads a report period.

    - "7": the last 7 days ending today, clamped to 1..max_days
    - "2025-01-05": that whole day
    - "2025-01-01 2025-01-05": inclusive range
    - any date may carry an HH:MM; a missing start time is 00:00, a
      missing end time 23:59:59
    A malformed or reversed range yields None.
    """
    value = (text or "").strip()
    if not value:
        return None

    if _DAY_COUNT.match(value):
        days = min(max(int(value), 1), max_days)
        start_day = today - timedelta(days=days - 1)
        return ReportRange(
            start=datetime.combine(start_day, time.min),
            end=datetime.combine(today, END_OF_DAY),
        )

    points = _parse_points(value.split())
    if points is None:
        return None

    start_day, start_time = points[0]
    if len(points) == 1:
        end_day, end_time = start_day, None
    else:
        end_day, end_time = points[1]

    report_range = ReportRange(
        start=datetime.combine(start_day, start_time or time.min),
        end=datetime.combine(end_day, end_time or END_OF_DAY),
        has_time=start_time is not None or end_time is not None,
    )
    if report_range.start > report_range.end:
        return None
    return report_range


class ReportQueryFlow:
    FLOW = "report"

    def __init__(
        self,
        case_service: CaseService,
        state_manager: ConversationStateManager,
        cooldown: CooldownTracker,
        timezone: Optional[str] = None,
        max_days: int = 30,
    ):
        self.case_service = case_service
        self.state_manager = state_manager
        self.cooldown = cooldown
        self.timezone = timezone
        self.max_days = max_days

    def start(self, message: IncomingMessage) -> BotReply:
        remaining = self.cooldown.remaining_seconds(message.user_id)
        if remaining > 0:
            logger.info(f"⏳ /report rate limited for user {message.user_id} ({remaining}s left)")
            return BotReply(text=wait_message(remaining, "report"))

        self.state_manager.set_state(
            message.user_id, self.FLOW, message.chat_id, ReportFlowStates.AWAITING_FOLLOWER
        )
        return BotReply(text=ReportMessages.ASK_FOLLOWER)

    def handle_pending(self, message: IncomingMessage) -> BotReply:
        state = self.state_manager.get_state(message.user_id, self.FLOW, message.chat_id)
        if state is None:
            return BotReply(text=ReportMessages.EXPIRED)

        text = (message.text or "").strip()

        if state.step == ReportFlowStates.AWAITING_FOLLOWER:
            if not text:
                return BotReply(text=ReportMessages.ASK_FOLLOWER)
            follower = None if text.lower() == "all" else text
            self.state_manager.update_context(
                message.user_id, self.FLOW, ReportFlowStates.AWAITING_RANGE, {"follower": follower}
            )
            return BotReply(text=ReportMessages.ask_range(self.max_days))

        if state.step == ReportFlowStates.AWAITING_RANGE:
            report_range = parse_report_range(text, local_today(self.timezone), self.max_days)
            if report_range is None:
                return BotReply(text=ReportMessages.invalid_range(self.max_days))

            try:
                report = self.case_service.build_range_report(report_range, state.data.get("follower"))
            except Exception as e:
                logger.error(f"Error building range report: {e}", exc_info=True)
                self.state_manager.clear_state(message.user_id, self.FLOW)
                return BotReply(text=ReportMessages.FAILED)

            self.cooldown.arm(message.user_id)
            self.state_manager.clear_state(message.user_id, self.FLOW)
            return BotReply(text=report)

        self.state_manager.clear_state(message.user_id, self.FLOW)
        return BotReply(text=ReportMessages.EXPIRED)
