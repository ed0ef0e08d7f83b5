"""Summary: Deterministic scoring and ranking of smart suggestions.

Importance: Turns calendar, email, and chat signals into one prioritized, capped list.
Alternatives: Rank with an LLM, at the cost of determinism.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta

from taskdeck.models import CalendarEvent, ChatMessage, EmailMessage, Suggestion


MAX_SUGGESTIONS = 10
RECENT_CHAT_SECONDS = 6 * 3600
ACTION_WORDS = (
    "urgent",
    "asap",
    "action required",
    "deadline",
    "reminder",
    "follow up",
    "response needed",
    "review",
    "approve",
    "feedback",
)
MONTH_ABBREVIATIONS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

# type -> (score, priority, context, title verb)
CHAT_RULES = {
    "mention": (85, "high", "You were mentioned", "Reply to mention from"),
    "dm": (80, "high", "Direct message", "Reply to DM from"),
    "saved": (70, "medium", "Saved item", "Follow up on"),
    "thread": (60, "medium", "Thread activity", "Respond in thread to"),
}

_NAMED_ADDRESS = re.compile(r"^(.+?)\s*<.*>$")


@dataclass(frozen=True)
class SuggestionEngine:
    """Summary: Pure suggestion generator with an explicit clock.

    Importance: Same inputs and the same ``now`` always produce the same list.
    Alternatives: Read the wall clock inside each rule.
    """

    limit: int = MAX_SUGGESTIONS

    def generate(
        self,
        events: list[CalendarEvent],
        emails: list[EmailMessage],
        messages: list[ChatMessage],
        now: datetime,
    ) -> list[Suggestion]:
        """Summary: Score every source, merge, and keep the top results.

        Importance: ``sorted`` is stable, so equal scores keep calendar, email, chat order.
        Alternatives: Interleave sources round-robin.
        """

        now = _aware(now)
        combined = [
            *self.calendar_suggestions(events, now),
            *self.email_suggestions(emails),
            *self.chat_suggestions(messages, now),
        ]
        ranked = sorted(combined, key=lambda suggestion: suggestion.score, reverse=True)
        return ranked[: self.limit]

    def calendar_suggestions(self, events: list[CalendarEvent], now: datetime) -> list[Suggestion]:
        """Summary: Suggest joining imminent meetings and preparing for later ones.

        Importance: Events that already started are skipped.
        Alternatives: Suggest follow-ups for past meetings too.
        """

        now = _aware(now)
        suggestions: list[Suggestion] = []
        for event in events:
            start = _parse_start(event.start, now)
            if start is None or start < now:
                continue
            minutes_until = int((start - now).total_seconds() // 60)
            is_today = start.date() == now.date()
            is_tomorrow = start.date() == now.date() + timedelta(days=1)

            if minutes_until <= 30:
                score, priority = 100, "high"
                context = f"In {minutes_until} minutes"
            else:
                if minutes_until <= 120:
                    score = 80
                elif is_today:
                    score = 60
                elif is_tomorrow:
                    score = 40
                else:
                    score = 20
                priority = "medium" if is_today else "low"
                if is_today:
                    context = f"Today at {_clock(start)}"
                elif is_tomorrow:
                    context = f"Tomorrow at {_clock(start)}"
                else:
                    context = f"{MONTH_ABBREVIATIONS[start.month - 1]} {start.day}"
            if event.location:
                context = f"{context} • {event.location}"

            if minutes_until <= 30:
                title = f"Join {event.title}"
            else:
                title = f"Review agenda and prep for {event.title}"
            suggestions.append(
                Suggestion(
                    id=f"calendar_{event.id}",
                    title=title,
                    source="calendar",
                    source_id=event.id,
                    priority=priority,
                    score=score,
                    context=context,
                    due_date=event.start,
                )
            )
        return suggestions

    def email_suggestions(self, emails: list[EmailMessage]) -> list[Suggestion]:
        suggestions: list[Suggestion] = []
        for email in emails:
            priority = "medium"
            score = 50
            if email.is_starred:
                priority = "high"
                score = 90
            if email.is_unread:
                score += 20
            subject = email.subject.lower()
            if any(word in subject for word in ACTION_WORDS):
                priority = "high"
                score += 30
            name = extract_sender_name(email.sender)
            suggestions.append(
                Suggestion(
                    id=f"email_{email.id}",
                    title=f"{_email_verb(subject, email.snippet.lower())} email from {name}: {email.subject}",
                    source="email",
                    source_id=email.id,
                    priority=priority,
                    score=score,
                    context=f"From {name}",
                )
            )
        return suggestions

    def chat_suggestions(self, messages: list[ChatMessage], now: datetime) -> list[Suggestion]:
        """Summary: Suggest replies to mentions, DMs, saved items, and threads.

        Importance: Plain channel traffic is never suggested.
        Alternatives: Score channel messages with a low base.
        """

        now_seconds = _aware(now).timestamp()
        suggestions: list[Suggestion] = []
        for message in messages:
            rule = CHAT_RULES.get(message.type)
            if rule is None:
                continue
            score, priority, context, verb = rule
            sent_at = _epoch(message.timestamp)
            if sent_at is not None and now_seconds - sent_at < RECENT_CHAT_SECONDS:
                score += 20
            if message.channel_name:
                context = f"{context} in #{message.channel_name}"
            text = message.text[:60] + ("..." if len(message.text) > 60 else "")
            suggestions.append(
                Suggestion(
                    id=f"slack_{message.id}",
                    title=f'{verb} {message.user_name or "someone"}: "{text}"',
                    source="slack",
                    source_id=message.id,
                    priority=priority,
                    score=score,
                    context=context,
                )
            )
        return suggestions


def extract_sender_name(sender: str) -> str:
    """Summary: Display name from ``"Name <addr>"``, else the local part of the address."""

    match = _NAMED_ADDRESS.match(sender.strip())
    if match:
        return match.group(1).replace('"', "").replace("'", "")
    return sender.strip().split("@")[0]


def _email_verb(subject: str, snippet: str) -> str:
    if "review" in subject or "please review" in snippet:
        return "Review and respond to"
    if "approve" in subject or "approval" in snippet:
        return "Review and approve"
    if "feedback" in subject or "your feedback" in snippet:
        return "Provide feedback on"
    if "action required" in subject or "action needed" in subject:
        return "Take action on"
    return "Reply to"


def _parse_start(value: str, now: datetime) -> datetime | None:
    """Summary: Parse an event start in the clock's timezone.

    Importance: All-day events carry a bare date and are read as local midnight.
    Alternatives: Treat naive values as UTC.
    """

    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=now.tzinfo)
    return parsed.astimezone(now.tzinfo)


def _aware(now: datetime) -> datetime:
    return now if now.tzinfo is not None else now.astimezone()


def _clock(moment: datetime) -> str:
    hour = moment.hour % 12 or 12
    meridiem = "AM" if moment.hour < 12 else "PM"
    return f"{hour}:{moment.minute:02d} {meridiem}"


def _epoch(timestamp: str) -> float | None:
    try:
        return float(timestamp)
    except (TypeError, ValueError):
        return None
