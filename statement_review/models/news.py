"""
High-impact news event model.

Event times in the feed are already converted to broker server time by
the calendar scraper, so they compare directly with statement times.
"""

from dataclasses import dataclass
from datetime import datetime, time
from typing import Dict, Optional

NEWS_DATE_FORMATS = ["%b %d %Y", "%Y-%m-%d", "%d/%m/%Y", "%a %b %d %Y"]
NEWS_TIME_FORMATS = ["%H:%M", "%I:%M%p", "%I:%M %p"]

# "All Day" and blank-time events are treated as noon
ALL_DAY_TIME = time(12, 0)


@dataclass(frozen=True)
class NewsEvent:
    """A scheduled economic calendar event."""

    date: str
    time: str
    currency: str
    event: str = ""
    impact: str = ""

    @classmethod
    def from_dict(cls, data: Dict) -> "NewsEvent":
        return cls(
            date=str(data.get("date") or ""),
            time=str(data.get("time") or ""),
            currency=str(data.get("currency") or "").upper(),
            event=str(data.get("event") or ""),
            impact=str(data.get("impact") or ""),
        )

    def scheduled_at(self) -> Optional[datetime]:
        """Event time in server time, or None when the date is unreadable."""
        event_date = None
        for fmt in NEWS_DATE_FORMATS:
            try:
                event_date = datetime.strptime(self.date.strip(), fmt).date()
                break
            except ValueError:
                continue
        if event_date is None:
            return None

        text = self.time.strip()
        if not text or text.lower() == "all day":
            return datetime.combine(event_date, ALL_DAY_TIME)

        for fmt in NEWS_TIME_FORMATS:
            try:
                return datetime.combine(event_date, datetime.strptime(text, fmt).time())
            except ValueError:
                continue
        return None

    def to_dict(self) -> Dict:
        return {
            "date": self.date,
            "time": self.time,
            "currency": self.currency,
            "event": self.event,
            "impact": self.impact,
        }
