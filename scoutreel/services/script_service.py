"""
Intro script writer - drafts and polishes the text a video is rendered from.

Uses the OpenAI chat completions API:
  POST {OPENAI_BASE_URL}/v1/chat/completions

- generate_intro_script(profile): first draft from a scraped profile
- improve_intro_script(script):   rewrite an existing script

Neither call costs credits; the script only becomes billable when it is
submitted through start_video_generation().
"""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

import requests
from requests.exceptions import ConnectionError as RequestsConnectionError, Timeout

from scoutreel.config import config
from scoutreel.exceptions import (
    NotConfiguredError,
    ProviderRejectedError,
    ProviderUnavailableError,
    UnparseableResponseError,
)

PROVIDER = "openai"

SCRIPT_TIMEOUT = (10, 60)  # (connect_timeout, read_timeout)
MAX_RETRIES = 3
BASE_RETRY_DELAY = 2  # seconds (exponential backoff: 2s, 4s)

# Prompts only carry the first few skills
MAX_PROMPT_SKILLS = 5
DEFAULT_COMPANY = "their current role"

GENERATE_INSTRUCTIONS = (
    "You are an expert in writing personalized introduction scripts for recruiters. "
    "Given the following information about a candidate, write a compelling intro script "
    "that highlights their key skills and experience. Reply with the script only, "
    "in plain spoken text, under {max_chars} characters."
)

IMPROVE_INSTRUCTIONS = (
    "You are an expert copywriter specializing in recruitment. Improve the provided intro "
    "script to be more engaging and effective. Focus on clarity, conciseness and a compelling "
    "call to action. Reply with the improved script only, under {max_chars} characters."
)


class ScriptServerError(Exception):
    """5xx from the completions API (retryable)."""
    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(message)


def build_profile_prompt(profile: Dict[str, Any]) -> str:
    """Candidate block for the draft prompt, from stored profile fields."""
    first = profile.get("first_name") or ""
    last = profile.get("last_name") or ""
    if not (first or last) and profile.get("full_name"):
        first, _, last = profile["full_name"].partition(" ")
    skills: List[str] = list(profile.get("skills") or [])[:MAX_PROMPT_SKILLS]

    return "\n".join([
        f"Candidate Name: {' '.join(p for p in (first, last) if p) or 'Unknown'}",
        f"Headline: {profile.get('headline') or ''}",
        f"Skills: {', '.join(skills)}",
        f"Current Company: {profile.get('current_company') or DEFAULT_COMPANY}",
        "",
        "Intro Script:",
    ])


def _completion_text(body: Any) -> str:
    try:
        text = body["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise UnparseableResponseError(f"Completion response has no message content: {e}") from e
    if not isinstance(text, str) or not text.strip():
        raise UnparseableResponseError("Completion response content is empty")
    return text.strip()


class ScriptWriter:
    """Thin client for the two script prompts."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        retry_delay: float = BASE_RETRY_DELAY,
    ):
        self.api_key = api_key if api_key is not None else config.OPENAI_API_KEY
        self.model = model or config.OPENAI_SCRIPT_MODEL
        self.base_url = (base_url or config.OPENAI_BASE_URL).rstrip("/")
        self.retry_delay = retry_delay

    def _complete(self, instructions: str, content: str) -> str:
        """
        One chat completion, retried on transport errors and 5xx.

        Raises:
            NotConfiguredError, ProviderRejectedError (4xx),
            ProviderUnavailableError (after retries), UnparseableResponseError
        """
        if not self.api_key:
            raise NotConfiguredError(PROVIDER, "OPENAI_API_KEY is not set")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": instructions.format(max_chars=config.SCRIPT_MAX_CHARS)},
                {"role": "user", "content": content},
            ],
        }

        last_error = None
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                r = requests.post(
                    f"{self.base_url}/v1/chat/completions",
                    headers=headers,
                    json=payload,
                    timeout=SCRIPT_TIMEOUT,
                )
                if not r.ok:
                    if 400 <= r.status_code < 500:
                        raise ProviderRejectedError(
                            PROVIDER, str(r.status_code), f"OpenAI rejected the request ({r.status_code}): {r.text[:300]}",
                        )
                    raise ScriptServerError(r.status_code, f"OpenAI server error {r.status_code}: {r.text[:200]}")
                try:
                    body = r.json()
                except ValueError as e:
                    raise UnparseableResponseError(f"OpenAI returned non-JSON: {r.text[:200]}") from e
                return _completion_text(body)
            except (Timeout, RequestsConnectionError, ScriptServerError) as e:
                last_error = e
                if attempt < MAX_RETRIES:
                    delay = self.retry_delay * (2 ** (attempt - 1))
                    print(f"[SCRIPT] Attempt {attempt} failed ({type(e).__name__}), retrying in {delay}s...")
                    time.sleep(delay)

        raise ProviderUnavailableError(PROVIDER, f"OpenAI request failed after {MAX_RETRIES} attempts: {last_error}")

    def generate_intro_script(self, profile: Dict[str, Any]) -> str:
        script = self._complete(GENERATE_INSTRUCTIONS, build_profile_prompt(profile))
        print(f"[SCRIPT] Drafted {len(script)} chars for profile {profile.get('id')}")
        return script

    def improve_intro_script(self, script: str) -> str:
        if not isinstance(script, str) or not script.strip():
            raise ValueError("script is required")
        improved = self._complete(IMPROVE_INSTRUCTIONS, f"Original Script: {script.strip()}")
        print(f"[SCRIPT] Improved script ({len(script)} -> {len(improved)} chars)")
        return improved


# ─────────────────────────────────────────────────────────────
# Process-wide writer
# ─────────────────────────────────────────────────────────────
_writer: Optional[ScriptWriter] = None


def get_script_writer() -> ScriptWriter:
    global _writer
    if _writer is None:
        _writer = ScriptWriter()
    return _writer


def set_script_writer(writer: Optional[ScriptWriter]) -> None:
    """Install a specific writer (tests), or None to rebuild from config."""
    global _writer
    _writer = writer
