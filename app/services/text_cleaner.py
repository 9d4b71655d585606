"""
Text preparation for certificate emails.

Platform emails are mostly HTML newsletters wrapped around one sentence
about the course. Before a body goes into an enrichment prompt it is:
1. Flattened to plain text (BeautifulSoup)
2. Stripped of footers, unsubscribe blocks and quoted replies
3. Cut down to the prompt budget, keeping lines that talk about the course
"""

import re

from bs4 import BeautifulSoup

# Prompt budget for enrichment calls (~2000 tokens at 4 chars/token)
MAX_CHARS = 8000

# Lines containing any of these survive trimming first
COURSE_LINE = re.compile(
    r'course|certific|completed|completion|specialization|skills|learned|'
    r'credential|program|awarded|earned',
    re.IGNORECASE
)

HTML_TAG = re.compile(r'<\s*(html|body|div|p|table|br|span|a)\b', re.IGNORECASE)

# Everything after a sign-off is dropped
SIGN_OFF = re.compile(
    r'^(thanks\s*(&|and)?\s*regards?|best\s*regards?|warm\s*regards?|kind\s*regards?|'
    r'regards,?\s*$|sincerely|the\s+\w+(\s+\w+)?\s+team\s*$)'
)

# Individual lines that are never about the course
SKIP_LINE = re.compile(
    r'^on\s+.+wrote:|^>+|^-{3,}.*(original|forwarded)\s*message|'
    r'unsubscribe|intended\s*recipient|this\s*(e-?mail|message)\s*(is\s*)?(intended|confidential)|'
    r'you\s*are\s*receiving\s*this|manage\s*(your\s*)?(email\s*)?(preferences|notifications)|'
    r'view\s*(this\s*email\s*)?in\s*(your\s*)?browser|privacy\s*policy|'
    r'\[(image|cid):'
)

BLOCK_TAGS = ['p', 'div', 'tr', 'h1', 'h2', 'h3', 'li']


def looks_like_html(text: str) -> bool:
    return bool(text) and bool(HTML_TAG.search(text))


def normalize_whitespace(text: str) -> str:
    text = text.replace('\r\n', '\n').replace('\r', '\n')
    text = re.sub(r'[ \t\xa0]+', ' ', text)
    text = re.sub(r' *\n *', '\n', text)
    return re.sub(r'\n{3,}', '\n\n', text).strip()


def html_to_text(raw_html: str) -> str:
    """
    Flatten an email body to plain text.

    Plain-text bodies only get their whitespace normalized.

    Args:
        raw_html: Decoded message body, HTML or plain text

    Returns:
        Plain text, one block element per line
    """
    if not raw_html:
        return ""

    if not looks_like_html(raw_html):
        return normalize_whitespace(raw_html)

    soup = BeautifulSoup(raw_html, "html.parser")
    for tag in soup(['script', 'style', 'head', 'meta', 'link']):
        tag.decompose()
    for br in soup.find_all('br'):
        br.replace_with('\n')
    for block in soup.find_all(BLOCK_TAGS):
        block.insert_after('\n')

    return normalize_whitespace(soup.get_text(separator=' '))


def remove_noise(text: str) -> str:
    """Drop quoted replies, footer lines and everything after the sign-off."""
    kept = []
    for line in (text or "").split('\n'):
        lowered = line.lower().strip()
        if SIGN_OFF.match(lowered):
            break
        if SKIP_LINE.search(lowered):
            continue
        kept.append(line)

    return re.sub(r'\n{3,}', '\n\n', '\n'.join(kept)).strip()


def trim_to_token_limit(text: str, max_chars: int = MAX_CHARS) -> str:
    """
    Fit text into max_chars.

    Course lines are kept first (in their original order), then the rest of
    the body fills whatever room is left.
    """
    if len(text) <= max_chars:
        return text

    lines = text.split('\n')
    course_text = '\n'.join(line for line in lines if COURSE_LINE.search(line))
    rest_text = '\n'.join(line for line in lines if not COURSE_LINE.search(line))

    room = max_chars - len(course_text) - 2
    if room <= 0:
        return course_text[:max_chars].strip()

    return (course_text + '\n\n' + rest_text[:room]).strip()[:max_chars]


def prepare_prompt_text(raw_body: str, max_chars: int = MAX_CHARS) -> str:
    """HTML → text → noise removal → trim, for enrichment prompts."""
    return trim_to_token_limit(remove_noise(html_to_text(raw_body)), max_chars=max_chars)
