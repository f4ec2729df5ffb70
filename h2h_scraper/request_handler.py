# h2h_scraper/request_handler.py

import time
import random
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

import requests

from h2h_scraper.config import REQUEST_CONFIG, ERROR_CONFIG, STOP_SIGNALS
from h2h_scraper.parsers.player_parser import parse_player_profile, parse_season_options

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """Transport failure: the page could not be fetched."""

    def __init__(self, message: str, error_type: str = 'connection', status: int = None):
        super().__init__(message)
        self.error_type = error_type  # 'connection', 'timeout', 'http', 'ssl'
        self.status = status


class PageParseError(Exception):
    """The page was fetched but does not look like a player profile."""


class ProtectedRequestHandler:
    """
    Fetches cztenis player pages with a realistic browser identity.

    Pacing lives in the caller (one AdaptivePacer per crawl); this class only
    shapes requests, honours 429 pauses and reports failures as FetchError.
    """

    USER_AGENTS = [
        'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36',
        'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36',
        'Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:123.0) Gecko/20100101 Firefox/123.0',
        'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.3 Safari/605.1.15',
        'Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36',
        'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36 Edg/121.0.0.0',
    ]

    def __init__(self, config: dict = None, error_config: dict = None, session: requests.Session = None):
        self.config = config or REQUEST_CONFIG
        self.error_config = error_config or ERROR_CONFIG
        self.base_url = self.config['base_url'].rstrip('/')
        self.timeout = self.config.get('timeout', 30)
        self.session = session or requests.Session()
        self.request_count = 0
        self.current_user_agent_index = random.randint(0, len(self.USER_AGENTS) - 1)
        self.pause_until = None

    def _rotate_user_agent(self) -> str:
        """Rotate user agent periodically"""
        if self.request_count and self.request_count % random.randint(15, 25) == 0:
            self.current_user_agent_index = random.randint(0, len(self.USER_AGENTS) - 1)
        return self.USER_AGENTS[self.current_user_agent_index]

    def _get_headers(self, referer: str = None) -> dict:
        """Generate realistic browser headers"""
        headers = {
            'User-Agent': self._rotate_user_agent(),
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8',
            'Accept-Language': self.config.get('accept_language', 'cs,en;q=0.9'),
            'Accept-Encoding': 'gzip, deflate',
            'Connection': 'keep-alive',
            'Upgrade-Insecure-Requests': '1',
            'Sec-Fetch-Dest': 'document',
            'Sec-Fetch-Mode': 'navigate',
            'Sec-Fetch-Site': 'none' if not referer else 'same-origin',
            'Sec-Fetch-User': '?1',
        }
        if referer:
            headers['Referer'] = referer
        return headers

    def _check_pause(self):
        """Wait out a server-requested pause (429)"""
        if self.pause_until:
            now = datetime.now()
            if now < self.pause_until:
                wait_seconds = (self.pause_until - now).total_seconds()
                logger.info(f"Scraper paused. Resuming in {wait_seconds / 60:.1f} minutes...")
                time.sleep(wait_seconds)
            self.pause_until = None

    def _handle_error_response(self, response, url: str):
        status = response.status_code
        if status in STOP_SIGNALS:
            retry_after = response.headers.get('Retry-After', '')
            default_pause = self.error_config.get('rate_limit_pause', 300)
            wait_time = int(retry_after) if str(retry_after).isdigit() else default_pause
            logger.warning(f"Rate limited ({status}) by {url}. Pausing {wait_time} seconds...")
            self.pause_until = datetime.now() + timedelta(seconds=wait_time)
        else:
            logger.warning(f"HTTP {status} for {url}")
        raise FetchError(f"HTTP {status} for {url}", error_type='http', status=status)

    def _request(self, method: str, path: str, data: dict = None, referer: str = None) -> str:
        self._check_pause()
        url = f"{self.base_url}{path}"
        headers = self._get_headers(referer)
        if data is not None:
            headers['Content-Type'] = 'application/x-www-form-urlencoded'

        try:
            response = self.session.request(
                method, url,
                data=data,
                headers=headers,
                timeout=self.timeout,
                allow_redirects=True,
            )
        except requests.exceptions.SSLError as e:
            raise FetchError(f"SSL error for {url}: {e}", error_type='ssl') from e
        except requests.Timeout as e:
            raise FetchError(f"Timeout for {url}", error_type='timeout') from e
        except requests.RequestException as e:
            raise FetchError(f"Request failed for {url}: {e}", error_type='connection') from e

        self.request_count += 1
        if response.status_code != 200:
            self._handle_error_response(response, url)

        logger.debug(f"OK {method} {url} ({self.request_count} requests)")
        return response.text

    def fetch_profile(self, player_id: int) -> Tuple[str, Dict, List[Dict[str, str]]]:
        """Fetch a player's profile page: (html, profile fields, season options)"""
        html = self._request('GET', f"/hrac/{player_id}")
        profile = parse_player_profile(html)
        seasons = parse_season_options(html)
        if not profile.get('name') and not seasons:
            raise PageParseError(f"Page for player {player_id} has no name and no seasons")
        logger.debug(f"Player {player_id}: found {len(seasons)} seasons")
        return html, profile, seasons

    def fetch_season(self, player_id: int, season_code: str) -> str:
        """Fetch one season's match listing (form POST on the profile URL)"""
        return self._request(
            'POST', f"/hrac/{player_id}",
            data={'volba': '1', 'sezona': season_code},
            referer=f"{self.base_url}/hrac/{player_id}",
        )

    def close(self):
        self.session.close()
