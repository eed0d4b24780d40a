"""Extraction client calling the Gemini generateContent API."""
import logging
import time
from typing import List, Optional

import requests

from extractor.prompts import build_extraction_prompt
from processor.errors import ExtractionCallError

logger = logging.getLogger(__name__)


class GeminiExtractor:
    """Sends page text to Gemini and returns the raw response text."""

    BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

    def __init__(
        self,
        api_key: str,
        model: str = 'gemini-2.0-flash',
        timeout: int = 120,
        max_output_tokens: int = 32768,
        temperature: float = 0.3,
        max_retries: int = 2,
        event_types: Optional[List[str]] = None,
        blockchain_focus: Optional[List[str]] = None
    ):
        """
        Initialize the extraction client.

        Args:
            api_key: Gemini API key
            model: Model name
            timeout: HTTP request timeout in seconds
            max_output_tokens: Output budget per call
            temperature: Sampling temperature
            max_retries: Total attempts per call (default: one retry)
            event_types: Restrict extraction to these event types
            blockchain_focus: Restrict extraction to events about these chains
        """
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_output_tokens = max_output_tokens
        self.temperature = temperature
        self.max_retries = max_retries
        self.event_types = list(event_types or [])
        self.blockchain_focus = list(blockchain_focus or [])

    def extract(self, document_text: str, chunk_label: str = 'part 1 of 1') -> str:
        """
        Ask the model for a JSON array of events found in the text.

        Args:
            document_text: Page text (or one window of it)
            chunk_label: Position of this text within the page

        Returns:
            Raw response text, untrusted

        Raises:
            ExtractionCallError: If every attempt fails or the response is empty
        """
        payload = {
            'contents': [{
                'role': 'user',
                'parts': [{'text': build_extraction_prompt(
                    document_text, chunk_label,
                    event_types=self.event_types,
                    blockchain_focus=self.blockchain_focus,
                )}],
            }],
            'generationConfig': {
                'maxOutputTokens': self.max_output_tokens,
                'temperature': self.temperature,
            },
        }

        data = self._post_with_retry(payload, chunk_label)
        text = self._response_text(data)
        if not text:
            raise ExtractionCallError(f"Empty response from model for {chunk_label}")

        logger.info(f"Model response for {chunk_label}: {len(text)} characters")
        return text

    def _post_with_retry(self, payload: dict, chunk_label: str) -> dict:
        """
        POST the request with retry logic.

        Raises:
            ExtractionCallError: If all retry attempts fail
        """
        url = f"{self.BASE_URL}/{self.model}:generateContent"
        base_delay = 1  # seconds

        for attempt in range(self.max_retries):
            try:
                logger.info(
                    f"Calling {self.model} for {chunk_label} "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )
                response = requests.post(
                    url,
                    params={'key': self.api_key},
                    json=payload,
                    timeout=self.timeout
                )
                response.raise_for_status()
                return response.json()

            except (requests.RequestException, ValueError) as e:
                if attempt < self.max_retries - 1:
                    delay = base_delay * (2 ** attempt)
                    logger.warning(
                        f"Extraction call failed (attempt {attempt + 1}/"
                        f"{self.max_retries}): {e}. Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"All {self.max_retries} extraction attempts failed. "
                        f"Last error: {e}"
                    )
                    raise ExtractionCallError(str(e)) from e

        raise ExtractionCallError(f"No extraction attempts made for {chunk_label}")

    @staticmethod
    def _response_text(data: dict) -> str:
        candidates = data.get('candidates') or []
        if not candidates:
            return ''
        parts = candidates[0].get('content', {}).get('parts') or []
        return ''.join(part.get('text', '') for part in parts)
