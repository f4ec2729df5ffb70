# h2h_scraper/parsers/player_parser.py

import re
import logging
from datetime import date
from typing import Dict, List, Optional

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)


def parse_player_name(full_name: str) -> Dict[str, Optional[str]]:
    """Split cztenis "Surname Given Names" into first/last name.

    A single token is a surname only (common in doubles listings).
    """
    name = (full_name or '').strip()
    if not name:
        return {'first_name': None, 'last_name': None}
    parts = name.split()
    if len(parts) == 1:
        return {'first_name': None, 'last_name': parts[0]}
    return {'first_name': ' '.join(parts[1:]), 'last_name': parts[0]}


def _parse_czech_date(value: str) -> Optional[date]:
    """Parse DD.MM.YYYY, returning None for anything else"""
    m = re.search(r'(\d{1,2})\.(\d{1,2})\.(\d{4})', value or '')
    if not m:
        return None
    try:
        return date(int(m.group(3)), int(m.group(2)), int(m.group(1)))
    except ValueError:
        return None


def parse_player_profile(html: str) -> Dict:
    """Parse the basic profile fields shown above the season selector"""
    soup = BeautifulSoup(html, 'html.parser')

    heading = soup.select_one('div.row div.span12 h2') or soup.find('h2')
    name = heading.get_text(' ', strip=True) if heading else ''
    name = re.sub(r'\s+', ' ', name)

    profile = {
        'name': name,
        'birth_year': None,
        'current_club': None,
        'registration_valid_until': None,
    }
    profile.update(parse_player_name(name))

    for row in soup.select('table.table-bordered.table-striped tr'):
        cells = row.find_all('td')
        if len(cells) < 2:
            continue
        label = cells[0].get_text(strip=True)
        strong = cells[-1].find('strong')
        value = (strong or cells[-1]).get_text(strip=True)

        if 'Rok narození' in label:
            try:
                profile['birth_year'] = int(value)
            except ValueError:
                logger.debug(f"Unparseable birth year '{value}'")
        elif 'Klub' in label:
            profile['current_club'] = value or None
        elif 'Platnost reg. do' in label:
            profile['registration_valid_until'] = _parse_czech_date(value)

    return profile


def parse_season_options(html: str) -> List[Dict[str, str]]:
    """List the seasons offered in the profile's season <select>"""
    soup = BeautifulSoup(html, 'html.parser')
    seasons = []
    seen = set()
    for option in soup.select('select[name="sezona"] option'):
        value = (option.get('value') or '').strip()
        if not value or value in seen:
            continue
        seen.add(value)
        seasons.append({'value': value, 'label': option.get_text(strip=True)})
    return seasons
