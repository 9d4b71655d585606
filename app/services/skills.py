"""
Skill and course-name resolution.

Skills come from a three-tier chain:
1. enrichment - Gemini summary, cleaned
2. keywords   - local keyword table + course-topic phrases
3. sentinel   - "General Knowledge"

Each tier that yields nothing records why, so a run's logs show which
fallback produced the stored value. The result is never empty.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from app.errors import EnrichmentError
from app.models.certificate import DEFAULT_SKILLS

logger = logging.getLogger(__name__)

MAX_SKILLS = 8
MAX_BASIC_SKILLS = 5
MAX_SKILL_LENGTH = 50
MIN_ENRICHED_COURSE_NAME = 5

SKILLS_PREAMBLE = re.compile(
    r'^\s*(skills learned:|skills:|the skills learned are:|here are the skills:)',
    re.IGNORECASE
)
BULLET = re.compile(r'^\s*[-•*]\s*', re.MULTILINE)
SKILL_SPLIT = re.compile(r'[,;•\n]')

SKILL_KEYWORDS = {
    'Python': ['python', 'django', 'flask', 'pandas', 'numpy'],
    'JavaScript': ['javascript', 'js', 'node.js', 'react', 'vue', 'angular'],
    'Data Science': ['data science', 'data analysis', 'statistics', 'analytics'],
    'Machine Learning': ['machine learning', 'ml', 'artificial intelligence', 'ai', 'deep learning'],
    'Web Development': ['web development', 'html', 'css', 'frontend', 'backend'],
    'Cloud Computing': ['aws', 'azure', 'google cloud', 'cloud', 'docker', 'kubernetes'],
    'Database': ['sql', 'mysql', 'postgresql', 'mongodb', 'database'],
    'Project Management': ['project management', 'agile', 'scrum', 'pmp'],
    'Digital Marketing': ['digital marketing', 'seo', 'sem', 'social media'],
    'Business Analysis': ['business analysis', 'requirements', 'process improvement'],
    'Cybersecurity': ['cybersecurity', 'security', 'penetration testing', 'ethical hacking'],
    'Mobile Development': ['mobile development', 'android', 'ios', 'react native', 'flutter'],
}

# Keyword match on word boundaries; "ai" must not fire on "email"
_KEYWORD_PATTERNS = {
    skill: re.compile(r'(?<![\w.])(' + '|'.join(re.escape(k) for k in keywords) + r')(?![\w])')
    for skill, keywords in SKILL_KEYWORDS.items()
}

COURSE_TOPIC_PATTERNS = [
    re.compile(r'\b(certification|certificate)\s+in\s+([^,.\n]+)', re.IGNORECASE),
    re.compile(r'\b(specialization|course)\s+in\s+([^,.\n]+)', re.IGNORECASE),
    re.compile(r'\b(fundamentals?|basics?|introduction)\s+(?:to|of)\s+([^,.\n]+)', re.IGNORECASE),
]
TOPIC_NOISE = re.compile(r'\b(course|certification|certificate|specialization)\b', re.IGNORECASE)


def capitalize_words(text: str) -> str:
    return re.sub(r'\b\w+', lambda m: m.group(0)[0].upper() + m.group(0)[1:].lower(), text)


def clean_skills_response(response: Optional[str]) -> str:
    """
    Normalize a model's skills answer into "A, B, C".

    Returns:
        Up to 8 comma-joined skills, or "" when nothing usable remains
    """
    if not response:
        return ""

    cleaned = SKILLS_PREAMBLE.sub('', response.strip())
    cleaned = BULLET.sub('', cleaned)

    skills = []
    for fragment in SKILL_SPLIT.split(cleaned):
        skill = re.sub(r'\s+', ' ', fragment).strip().strip('*').strip()
        if skill and len(skill) < MAX_SKILL_LENGTH:
            skills.append(skill)

    return ", ".join(skills[:MAX_SKILLS])


def extract_skills_basic(body: str, subject: str = "") -> str:
    """
    Local keyword fallback.

    Returns:
        Up to 5 comma-joined skills, or "" when nothing matched
    """
    text = f"{subject or ''} {body or ''}".lower()
    found = [skill for skill, pattern in _KEYWORD_PATTERNS.items() if pattern.search(text)]

    for pattern in COURSE_TOPIC_PATTERNS:
        match = pattern.search(text)
        if match and match.group(2):
            topic = TOPIC_NOISE.sub('', match.group(2)).strip()
            topic = re.sub(r'\s+', ' ', topic)
            if 2 < len(topic) < 30:
                topic = capitalize_words(topic)
                if topic not in found:
                    found.append(topic)

    return ", ".join(found[:MAX_BASIC_SKILLS])


# ============ RESOLUTION CHAIN ============

@dataclass(frozen=True)
class TierFailure:
    tier: str
    reason: str


@dataclass
class SkillsResolution:
    value: str
    source: str
    failures: list[TierFailure] = field(default_factory=list)


def resolve_skills(enricher, body: str, subject: str = "") -> SkillsResolution:
    """
    Run the enrichment → keywords → sentinel chain.

    Args:
        enricher: GeminiEnricher or None when enrichment is disabled
        body: Decoded message body
        subject: Message subject

    Returns:
        SkillsResolution whose value is never empty
    """
    failures = []

    if enricher is None or not enricher.available:
        failures.append(TierFailure("enrichment", "enrichment disabled"))
    else:
        try:
            skills = clean_skills_response(enricher.summarize_skills(body, subject))
            if skills:
                return SkillsResolution(skills, "enrichment", failures)
            failures.append(TierFailure("enrichment", "empty response after cleaning"))
        except EnrichmentError as e:
            failures.append(TierFailure("enrichment", e.details or e.message))

    try:
        skills = extract_skills_basic(body, subject)
        if skills:
            return SkillsResolution(skills, "keywords", failures)
        failures.append(TierFailure("keywords", "no keyword matched"))
    except (re.error, TypeError) as e:
        failures.append(TierFailure("keywords", str(e)))

    for failure in failures:
        logger.debug("Skills tier %s skipped: %s", failure.tier, failure.reason)
    return SkillsResolution(DEFAULT_SKILLS, "sentinel", failures)


def resolve_course_name(enricher, heuristic_name: str, body: str, subject: str = "") -> str:
    """
    Replace the heuristic course name with Gemini's when it is long enough.

    Any enrichment failure keeps the heuristic name.
    """
    if enricher is None or not enricher.available:
        return heuristic_name

    try:
        enriched = enricher.extract_course_name(body, subject)
    except EnrichmentError as e:
        logger.info("Course name enrichment skipped: %s", e.details or e.message)
        return heuristic_name

    if enriched and len(enriched) > MIN_ENRICHED_COURSE_NAME:
        return enriched
    return heuristic_name
