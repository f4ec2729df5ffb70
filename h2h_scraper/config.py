# h2h_scraper/config.py

import os

from dotenv import find_dotenv, load_dotenv

load_dotenv(find_dotenv(usecwd=True))

DATABASE_URL = os.environ.get('DATABASE_URL', '')
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
LOG_FILE = os.environ.get('LOG_FILE', 'scraper.log')  # relative to the working directory

# Source site
REQUEST_CONFIG = {
    'base_url': 'https://cztenis.cz',
    'timeout': 30,                         # seconds per request
    'accept_language': 'cs,en;q=0.9',
}

# Adaptive pacing (milliseconds), one request in flight at a time
PACING_CONFIG = {
    'base_delay': 2000,
    'min_delay': 300,
    'max_delay': 5000,
    'successes_to_speed_up': 3,            # consecutive successes before shrinking delay
    'speed_up_factor': 0.9,
    'max_backoff_exponent': 4,             # cap backoff at 2^4 = 16x base
}

# Crawl bounds
CRAWL_CONFIG = {
    'max_depth': -1,                       # -1 = unlimited, 0 = seeds only, 1 = seeds + opponents
    'max_players': -1,                     # -1 = unlimited; stop after N terminal items this run
    'empty_queue_poll': 5,                 # seconds between checks while the queue is empty
    'discovered_priority': 0,              # priority given to opponents/partners found while crawling
    'seed_priority': 10,
}

# Error handling: transport failures are never retried inline,
# failed queue items wait for an explicit reset-queue
ERROR_CONFIG = {
    'rate_limit_pause': 300,               # seconds to pause when 429 has no Retry-After
    'max_errors_stored': 50,               # cap error list written to scrape_logs
}

# Stop signals - only 429 triggers a pause (actual rate limiting)
STOP_SIGNALS = [429]

# Players seeded by `main.py seed`
SEED_PLAYERS = [
    {'id': 1026900, 'name': 'Kumstát Jan'},
    {'id': 1013801, 'name': 'Menšík Jakub'},
]
