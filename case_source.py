#!/usr/bin/env python3
"""
Case source client
Fetches the current state of a case from the court's case-status endpoint
"""

import logging
import time
from typing import Callable, Optional

import requests

from config import CASE_SOURCE_URL, FETCH_TIMEOUT, FETCH_RETRY_ATTEMPTS, FETCH_RETRY_DELAY
from errors import FetchError
from models import CaseSnapshot

logger = logging.getLogger(__name__)

REQUEST_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded",
    "User-Agent": "Mozilla/5.0 (X11; Linux x86_64) CaseMonitor/1.0",
    "Accept": "application/json,text/html;q=0.9,*/*;q=0.8",
}


def parse_json_response(response: requests.Response, cino: str) -> Optional[CaseSnapshot]:
    """Default parser: the endpoint answers with a JSON case record"""
    data = response.json()
    if not data:
        return None
    data = dict(data)
    data.setdefault("cino", cino)
    data.setdefault("raw_response", response.text)
    return CaseSnapshot.from_dict(data)


class CaseSourceClient:
    """
    Fetches case snapshots with bounded exponential backoff

    The HTML-to-record grammar of the court website is delegated to the
    injected parser.
    """

    def __init__(
        self,
        base_url: str = CASE_SOURCE_URL,
        timeout: float = FETCH_TIMEOUT,
        retry_attempts: int = FETCH_RETRY_ATTEMPTS,
        retry_delay: float = FETCH_RETRY_DELAY,
        parser: Callable[[requests.Response, str], Optional[CaseSnapshot]] = parse_json_response,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay = retry_delay
        self.parser = parser
        self.session = session or requests.Session()

    def make_request(self, cino: str) -> requests.Response:
        return self.session.post(
            self.base_url,
            data={"cino": cino, "source": "undefined"},
            headers=REQUEST_HEADERS,
            timeout=self.timeout,
        )

    def fetch_case(self, cino: str) -> Optional[CaseSnapshot]:
        """
        Fetch data for a single case with retry

        Returns:
            CaseSnapshot, or None when the source does not know the case

        Raises:
            FetchError: when every attempt failed
        """
        retries = 0
        delay = self.retry_delay

        while True:
            try:
                response = self.make_request(cino)

                if response.status_code == 404:
                    logger.warning(f"📭 Case {cino} not found at source")
                    return None

                response.raise_for_status()

                if not response.content:
                    logger.warning(f"📭 Empty response for case {cino}")
                    return None

                snapshot = self.parser(response, cino)
                if snapshot is not None:
                    logger.info(f"✅ Fetched case {cino}")
                return snapshot

            except (requests.RequestException, ValueError) as e:
                retries += 1
                if retries >= self.retry_attempts:
                    logger.error(f"❌ Error fetching case {cino} after {retries} attempts: {e}")
                    raise FetchError(str(e), cino=cino, attempts=retries) from e

                logger.warning(f"⚠️ Failed to fetch case {cino} (attempt {retries}/{self.retry_attempts}): {e}")
                logger.info(f"🔄 Retrying in {delay} seconds...")
                time.sleep(delay)
                delay *= 2  # Exponential backoff
