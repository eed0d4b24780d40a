"""Page fetcher turning event listing pages into plain text."""
import logging
import re
import time
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)


class PageFetcher:
    """Fetches a page and reduces its HTML to text suitable for extraction."""

    MIN_CONTENT_LENGTH = 100
    USER_AGENT = "Mozilla/5.0 (compatible; event-ingest/1.0)"
    STRIP_TAGS = ('script', 'style', 'noscript', 'svg', 'iframe', 'head', 'nav')

    def __init__(self, timeout: int = 30, max_retries: int = 3):
        """
        Initialize the page fetcher.

        Args:
            timeout: HTTP request timeout in seconds (default: 30)
            max_retries: Attempts before giving up (default: 3)
        """
        self.timeout = timeout
        self.max_retries = max_retries

    def fetch_text(self, url: str) -> str:
        """
        Fetch a page and return its visible text.

        Args:
            url: Page URL

        Returns:
            Page text with link targets kept inline

        Raises:
            requests.RequestException: If all retry attempts fail
            ValueError: If the page has too little content to extract from
        """
        logger.info(f"Fetching page: {url}")

        html_content = self._fetch_html(url)
        text = self._html_to_text(html_content, url)

        if len(text) < self.MIN_CONTENT_LENGTH:
            raise ValueError(
                f"Not enough content found at {url} ({len(text)} characters)"
            )

        logger.info(f"Fetched {len(text)} characters from {url}")
        return text

    def _fetch_html(self, url: str) -> str:
        """
        Fetch page HTML with retry logic.

        Raises:
            requests.RequestException: If all retry attempts fail
        """
        base_delay = 1  # seconds

        for attempt in range(self.max_retries):
            try:
                logger.info(f"Fetching HTML (attempt {attempt + 1}/{self.max_retries})")
                response = requests.get(
                    url,
                    headers={'User-Agent': self.USER_AGENT},
                    timeout=self.timeout
                )
                response.raise_for_status()
                return response.text

            except requests.RequestException as e:
                if attempt < self.max_retries - 1:
                    # Calculate exponential backoff delay
                    delay = base_delay * (2 ** attempt)
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{self.max_retries}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"All {self.max_retries} retry attempts failed. Last error: {e}"
                    )
                    raise

    def _html_to_text(self, html_content: str, base_url: str) -> str:
        """
        Reduce HTML to text, one block per line.

        Anchors are rendered as "text (href)" with absolute hrefs so event
        and registration links survive extraction. Images with alt text
        keep their source URL the same way.
        """
        soup = BeautifulSoup(html_content, 'html.parser')

        for tag in soup(self.STRIP_TAGS):
            tag.decompose()

        for anchor in soup.find_all('a', href=True):
            href = anchor['href'].strip()
            if not href or href.startswith(('#', 'javascript:', 'mailto:')):
                continue
            label = anchor.get_text(' ', strip=True)
            anchor.replace_with(f"{label} ({urljoin(base_url, href)})")

        for image in soup.find_all('img', src=True):
            alt = image.get('alt', '').strip()
            if alt:
                image.replace_with(f"[image: {alt} ({urljoin(base_url, image['src'])})]")

        text = soup.get_text('\n')
        lines = (re.sub(r'[ \t]+', ' ', line).strip() for line in text.splitlines())
        return '\n'.join(line for line in lines if line)
