import os

APP_DIR = os.path.dirname(os.path.abspath(__file__))
CONFIG_DIR = os.environ.get("WATCHVAULT_CONFIG_DIR", os.path.join(APP_DIR, "config"))
DB_FILE = os.path.join(CONFIG_DIR, "watchvault.db")
CONFIG_FILE = os.path.join(CONFIG_DIR, "settings.yaml")

WATCHVAULT_DB = "sqlite:///" + DB_FILE

# Discovery loop
UNDO_STACK_CAPACITY = 10
MAX_AUTO_PAGES = 5
MIN_NEW_ITEMS_PER_LOAD = 5
ZERO_YIELD_PAGE_LIMIT = 2
PREFETCH_THRESHOLD = 5
VISIBLE_CARD_COUNT = 3
RELOAD_DEBOUNCE_SECONDS = 0.3

# Personal rating bounds (stars)
RATING_MIN = 1
RATING_MAX = 5

# Remote document collections
PUBLISHED_LISTS_COLLECTION = "publishedLists"
FOLLOWS_COLLECTION = "follows"

# TMDB
TMDB_BASE_URL = "https://api.themoviedb.org/3"
TMDB_IMAGE_BASE_URL = "https://image.tmdb.org/t/p"

DEFAULT_DEEP_LINK_BASE = "https://watchvault.app"

DEFAULT_SETTINGS = {
    "database": {
        "uri": WATCHVAULT_DB,
    },
    "discovery": {
        "include_swiped_items": False,
        "selected_method": "Popular",
        "content_type": "all",
    },
    "tmdb": {
        "api_token": None,
        "language": "en-US",
        "region": "US",
        "timeout": 15,
    },
    "remote": {
        "backend": "memory",
        "redis_url": "redis://localhost:6379/0",
        "key_prefix": "watchvault",
    },
    "sharing": {
        "deep_link_base": DEFAULT_DEEP_LINK_BASE,
    },
}
