"""
Tests for heuristic certificate extraction.

Platform, course name, download link and issue date are all derived from
one message without any model call.
"""

from datetime import date

from app.services.certificate_extractor import (
    UNKNOWN_PLATFORM,
    UNTITLED_COURSE,
    clean_subject,
    extract_certificate,
    extract_course_name,
    extract_download_link,
    infer_platform,
    parse_issue_date,
)
from app.models.certificate import MAX_COURSE_NAME_LENGTH
from app.services.types import CandidateMessage

TODAY = date(2025, 6, 1)


def test_infer_platform_from_sender():
    assert infer_platform("Coursera <no-reply@coursera.org>") == "Coursera"
    assert infer_platform("noreply@infosysspringboard.com") == "Infosys Springboard"
    assert infer_platform("LinkedIn Learning <linkedin-learning@linkedin.com>") == "LinkedIn Learning"


def test_infer_platform_unknown_sender():
    assert infer_platform("friend@example.com") == UNKNOWN_PLATFORM
    assert infer_platform("") == UNKNOWN_PLATFORM


def test_clean_subject_strips_prefix_and_generic_words():
    assert clean_subject("Fwd: Congratulations - Certificate: Machine Learning") == "Machine Learning"
    assert clean_subject("Re: Completion Certificate - AWS Cloud Practitioner") == "AWS Cloud Practitioner"


def test_course_name_upgraded_from_body():
    """A longer course phrase in the body beats a generic subject."""
    name = extract_course_name(
        "Your certificate",
        "Hi there,\nYou have completed: Introduction to Deep Learning with PyTorch.\n"
    )
    assert name == "Introduction to Deep Learning with PyTorch"


def test_course_name_from_html_body():
    body = "<html><body><p>Course: Google Data Analytics Professional Certificate</p></body></html>"
    assert extract_course_name("Well done", body) == "Google Data Analytics Professional Certificate"


def test_course_name_keeps_subject_when_body_is_generic():
    assert extract_course_name("Certificate: Python for Everybody", "Well done!") == "Python for Everybody"


def test_download_link_rule_precedence():
    """Certificate URLs win over download URLs even when they appear later."""
    body = (
        "Get the app: https://example.com/download/app\n"
        "View: https://www.coursera.org/account/accomplishments/certificate/ABC123"
    )
    assert extract_download_link(body) == "https://www.coursera.org/account/accomplishments/certificate/ABC123"


def test_download_link_unescapes_html_entities():
    body = '<a href="https://learn.example.com/credential/xyz?a=1&amp;b=2">View</a>'
    assert extract_download_link(body) == "https://learn.example.com/credential/xyz?a=1&b=2"


def test_download_link_missing():
    assert extract_download_link("No links here") is None
    assert extract_download_link("") is None


def test_parse_rfc2822_date_in_utc():
    assert parse_issue_date("Tue, 14 Jan 2025 23:30:00 -0500", today=TODAY) == date(2025, 1, 15)


def test_parse_iso_date():
    assert parse_issue_date("2025-03-02T10:00:00Z", today=TODAY) == date(2025, 3, 2)


def test_parse_unparsable_date_falls_back_to_today():
    assert parse_issue_date("not a date", today=TODAY) == TODAY
    assert parse_issue_date("", today=TODAY) == TODAY
    assert parse_issue_date(None, today=TODAY) == TODAY


def test_extract_certificate_full():
    message = CandidateMessage(
        id="m1",
        subject="Your edX certificate is ready",
        sender="certificates@edx.org",
        date="Mon, 13 Jan 2025 10:00:00 +0000",
        body="You have completed the course: Introduction to Cloud Computing with AWS.\n"
             "Download: https://courses.edx.org/certificates/abc123",
    )

    draft = extract_certificate(message, today=TODAY)

    assert draft.platform == "edX"
    assert draft.course_name == "Introduction to Cloud Computing with AWS"
    assert draft.issue_date == date(2025, 1, 13)
    assert draft.download_link == "https://courses.edx.org/certificates/abc123"
    assert draft.email_subject == "Your edX certificate is ready"
    assert draft.skills is None


def test_extract_certificate_untitled_when_nothing_found():
    message = CandidateMessage(id="m2", subject="", sender="someone@example.com", date="", body="")

    draft = extract_certificate(message, today=TODAY)

    assert draft.platform == UNKNOWN_PLATFORM
    assert draft.course_name == UNTITLED_COURSE
    assert draft.issue_date == TODAY
    assert draft.download_link is None


def test_course_name_fits_column_width():
    """Long subjects are the fallback name; they must fit the course_name column."""
    message = CandidateMessage(
        id="m3", subject="Certificate: " + "Advanced Topics " * 60,
        sender="no-reply@coursera.org", date="", body=""
    )

    draft = extract_certificate(message, today=TODAY)

    assert len(draft.course_name) == MAX_COURSE_NAME_LENGTH
    assert draft.course_name.startswith("Advanced Topics")
