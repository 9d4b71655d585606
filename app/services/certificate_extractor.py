"""
Regex-based Certificate Extractor.

Derives certificate fields from one fetched message using pattern matching.
Works WITHOUT any LLM/API - pure heuristics, deterministic for a given input.

Each field is driven by an ordered list of named rules; the first rule that
matches wins, so precedence is visible in one place and each rule can be
tested on its own.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional

from app.models.certificate import MAX_COURSE_NAME_LENGTH
from app.services.text_cleaner import html_to_text
from app.services.types import CandidateMessage, CertificateDraft

UNKNOWN_PLATFORM = "Unknown"
UNTITLED_COURSE = "Untitled Course"


@dataclass(frozen=True)
class ExtractionRule:
    """A named regex; captures group 1 when present, else the whole match."""
    name: str
    pattern: re.Pattern

    def search(self, text: str) -> Optional[str]:
        match = self.pattern.search(text or "")
        if not match:
            return None
        value = match.group(1) if match.groups() else match.group(0)
        return value.strip() if value else None


def _rule(name: str, pattern: str, flags: int = re.IGNORECASE) -> ExtractionRule:
    return ExtractionRule(name, re.compile(pattern, flags))


# ============ PLATFORM ============

# Sender substring -> platform, checked in order
PLATFORM_RULES = [
    ("coursera", "Coursera"),
    ("infosysspringboard", "Infosys Springboard"),
    ("edx", "edX"),
    ("udacity", "Udacity"),
    ("udemy", "Udemy"),
    ("linkedin", "LinkedIn Learning"),
]


def infer_platform(sender: str) -> str:
    """Platform from the sender address; "Unknown" when nothing matches."""
    sender_lower = (sender or "").lower()
    for needle, platform in PLATFORM_RULES:
        if needle in sender_lower:
            return platform
    return UNKNOWN_PLATFORM


# ============ COURSE NAME ============

SUBJECT_PREFIX = re.compile(r'^\s*(re|fwd?)\s*:\s*', re.IGNORECASE)
SUBJECT_NOISE_WORDS = ("certificate", "completion", "congratulations")
LEADING_PUNCTUATION = re.compile(r'^[\s\-:]+')

COURSE_NAME_RULES = [
    _rule("course_label", r'course[:\s]+([^.\n\r]{10,100})'),
    _rule("completed_label", r'completed[:\s]+([^.\n\r]{10,100})'),
    _rule("certification_label", r'certification[:\s]+([^.\n\r]{10,100})'),
    _rule("quoted_title", r'"([^"\n\r]{10,100})"', 0),
]


def clean_subject(subject: str) -> str:
    """
    Strip reply/forward prefixes and generic certificate words from a subject.

    Example: "Fwd: Congratulations - Certificate: Machine Learning"
             -> "Machine Learning"
    """
    name = SUBJECT_PREFIX.sub('', subject or '', count=1)
    for word in SUBJECT_NOISE_WORDS:
        name = re.sub(word, '', name, count=1, flags=re.IGNORECASE)
    name = re.sub(r'\s+', ' ', name)
    name = LEADING_PUNCTUATION.sub('', name)
    return name.strip()


def extract_course_name(subject: str, body: str) -> str:
    """
    Course name from the cleaned subject, upgraded from the body.

    The first body rule whose capture is longer than the current name
    replaces it; short subjects are assumed to be generic.
    """
    course_name = clean_subject(subject)
    text = html_to_text(body)

    for rule in COURSE_NAME_RULES:
        candidate = rule.search(text)
        if candidate and len(candidate) > len(course_name):
            return candidate

    return course_name


# ============ DOWNLOAD LINK ============

_URL_CHARS = r'[^\s<>"\']'

DOWNLOAD_LINK_RULES = [
    _rule("certificate_url", rf'https?://{_URL_CHARS}+certificate{_URL_CHARS}*'),
    _rule("credential_url", rf'https?://{_URL_CHARS}+credential{_URL_CHARS}*'),
    _rule("download_url", rf'https?://{_URL_CHARS}+download{_URL_CHARS}*'),
]


def extract_download_link(body: str) -> Optional[str]:
    """First URL of the first link rule with any match; None otherwise."""
    for rule in DOWNLOAD_LINK_RULES:
        link = rule.search(body)
        if link:
            # Links pulled out of HTML attributes keep their entity escapes
            return link.replace("&amp;", "&")
    return None


# ============ ISSUE DATE ============

def parse_issue_date(raw_date: Optional[str], today: Optional[date] = None) -> date:
    """
    Calendar date from a Date header.

    Tries RFC 2822, then ISO 8601. Unparsable or missing values fall back to
    today (UTC), so the result is never None.
    """
    fallback = today or datetime.now(timezone.utc).date()
    if not raw_date or not raw_date.strip():
        return fallback

    parsed = None
    try:
        parsed = parsedate_to_datetime(raw_date.strip())
    except (TypeError, ValueError, IndexError):
        try:
            parsed = datetime.fromisoformat(raw_date.strip().replace("Z", "+00:00"))
        except ValueError:
            return fallback

    if parsed is None:
        return fallback
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date()


# ============ FULL EXTRACTION ============

def extract_certificate(message: CandidateMessage, today: Optional[date] = None) -> CertificateDraft:
    """
    Extract all certificate fields except skills from a message.

    Args:
        message: Fetched Gmail message
        today: Fallback issue date (defaults to current UTC date)

    Returns:
        CertificateDraft with platform, course name, issue date and link
    """
    course_name = extract_course_name(message.subject, message.body) or message.subject.strip()

    return CertificateDraft(
        platform=infer_platform(message.sender),
        course_name=(course_name or UNTITLED_COURSE)[:MAX_COURSE_NAME_LENGTH],
        issue_date=parse_issue_date(message.date, today=today),
        download_link=extract_download_link(message.body),
        email_subject=message.subject
    )
