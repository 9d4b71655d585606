"""
Gemini Enricher for certificate emails.

Uses LangChain + Gemini for two optional enrichments:
- Skills summary (comma-separated list, cleaned by app.services.skills)
- Cleaner course name

The enricher is always optional. Every failure (missing key, quota,
timeout, malformed output) surfaces as EnrichmentError so callers can fall
back to local heuristics.
"""

import logging
from typing import Any, Optional

from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate
from langchain_google_genai import ChatGoogleGenerativeAI

from app.config import Settings
from app.errors import EnrichmentError
from app.services.text_cleaner import prepare_prompt_text

logger = logging.getLogger(__name__)


SKILLS_PROMPT = ChatPromptTemplate.from_messages([
    ("system", """You are analyzing a certificate completion email. Extract ONLY the key technical skills, technologies, or competencies learned from this course.

Instructions:
1. Focus on technical skills, programming languages, frameworks, tools, or methodologies
2. Return a concise comma-separated list (maximum 8 items)
3. Use proper capitalization (e.g., "Python", "Machine Learning", "React.js")
4. Avoid generic terms like "problem solving" or "teamwork"
5. If it's a business/soft skills course, extract the main business competencies
6. If no clear skills are found, return "General Knowledge"

Format your response as: Skill1, Skill2, Skill3, etc."""),
    ("human", """Email Subject: {subject}

Email Content:
{email_content}

Skills learned:""")
])


COURSE_NAME_PROMPT = ChatPromptTemplate.from_messages([
    ("system", """Extract the exact course or certification name from this email.

Instructions:
1. Return ONLY the course name, nothing else
2. Remove generic words like "Certificate", "Completion", "Congratulations"
3. Keep the specific course title as mentioned in the email
4. If multiple courses mentioned, pick the main one
5. Maximum 100 characters"""),
    ("human", """Email Subject: {subject}

Email Content:
{email_content}

Course name:""")
])


class GeminiEnricher:
    """
    Optional generative enrichment backed by Gemini.

    Args:
        settings: Supplies the API key, model name and timeout
        llm: Pre-built chat model (tests inject a fake); built lazily otherwise
    """

    def __init__(self, settings: Settings, llm: Any = None):
        self.settings = settings
        self._llm = llm

    @property
    def available(self) -> bool:
        return self._llm is not None or self.settings.gemini_enabled

    def _get_llm(self, max_output_tokens: int) -> Any:
        """Get configured Gemini LLM instance."""
        if self._llm is not None:
            return self._llm
        if not self.settings.gemini_enabled:
            raise EnrichmentError(details="GEMINI_API_KEY not configured")
        return ChatGoogleGenerativeAI(
            model=self.settings.gemini_model,
            google_api_key=self.settings.gemini_api_key,
            temperature=0.1,
            max_output_tokens=max_output_tokens,
            timeout=self.settings.gemini_timeout,
            max_retries=1,
        )

    def _invoke(self, prompt: ChatPromptTemplate, body: str, subject: str, max_output_tokens: int) -> str:
        try:
            chain = prompt | self._get_llm(max_output_tokens) | StrOutputParser()
            text = chain.invoke({
                "subject": subject or "",
                "email_content": prepare_prompt_text(body)
            })
        except EnrichmentError:
            raise
        except Exception as e:
            raise EnrichmentError(details=f"Gemini error: {e}") from e

        if not isinstance(text, str) or not text.strip():
            raise EnrichmentError(details="Gemini returned an empty response")
        return text.strip()

    def summarize_skills(self, body: str, subject: str = "") -> str:
        """
        Ask Gemini for the skills taught by the course.

        Returns:
            Raw model text; clean with clean_skills_response()

        Raises:
            EnrichmentError: On any failure
        """
        return self._invoke(SKILLS_PROMPT, body, subject, max_output_tokens=200)

    def extract_course_name(self, body: str, subject: str = "") -> str:
        """
        Ask Gemini for the exact course title.

        Raises:
            EnrichmentError: On any failure
        """
        name = self._invoke(COURSE_NAME_PROMPT, body, subject, max_output_tokens=100)
        return name.strip().strip('"').strip()[:100]

    def test_connection(self) -> bool:
        """True when a trivial prompt round-trips."""
        try:
            llm = self._get_llm(max_output_tokens=10)
            reply = llm.invoke('Hello, respond with just "OK" if you can hear me.')
            return bool(getattr(reply, "content", reply))
        except Exception as e:
            logger.warning("Gemini API test failed: %s", e)
            return False


def build_enricher(settings: Settings) -> Optional[GeminiEnricher]:
    """Enricher when a Gemini key is configured, None otherwise."""
    if not settings.gemini_enabled:
        logger.info("Gemini enrichment disabled (no API key)")
        return None
    return GeminiEnricher(settings)
