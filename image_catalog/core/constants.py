"""Domain limits, supported formats and the curated tag catalog."""
from typing import List, NamedTuple

MAX_FILE_SIZE = 50 * 1024 * 1024  # 50 MiB
MAX_FILENAME_LENGTH = 255
MAX_TAGS_PER_IMAGE = 20
MAX_TAG_NAME_LENGTH = 100
MIN_IMAGE_DIMENSION = 1
MAX_IMAGE_DIMENSION = 50000

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

SUPPORTED_CONTENT_TYPES = frozenset({
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
})

SORT_FIELDS = frozenset({"uploaded_at", "filename", "file_size", "created_at"})
SORT_ORDERS = frozenset({"asc", "desc"})
DEFAULT_SORT_FIELD = "uploaded_at"
DEFAULT_SORT_ORDER = "desc"

TAG_CREATE_ATTEMPTS = 3

DEFAULT_RECENT_LIMIT = 50
MAX_RECENT_LIMIT = 1000
DEFAULT_RECENT_WINDOW_HOURS = 24
MOST_USED_TAGS = 10

# Cache key prefixes
IMAGE_KEY_PREFIX = "image:"
LIST_KEY_PREFIX = "image_list:"
STATS_KEY_PREFIX = "stats:"


class PredefinedTag(NamedTuple):
    name: str
    description: str
    category: str
    display_order: int


PREDEFINED_TAGS: List[PredefinedTag] = [
    # Subject
    PredefinedTag("landscape", "Wide natural scenery and outdoor views", "subject", 1),
    PredefinedTag("portrait", "People and individual subjects", "subject", 2),
    PredefinedTag("nature", "Plants, animals, and natural elements", "subject", 3),
    PredefinedTag("urban", "Cities, buildings, and urban environments", "subject", 4),
    PredefinedTag("wildlife", "Animals in their natural habitat", "subject", 5),
    PredefinedTag("architecture", "Buildings and structural designs", "subject", 6),
    PredefinedTag("food", "Culinary subjects and meals", "subject", 7),
    PredefinedTag("travel", "Travel destinations and experiences", "subject", 8),
    # Time of day
    PredefinedTag("sunset", "Images captured during sunset", "time", 10),
    PredefinedTag("sunrise", "Images captured during sunrise", "time", 11),
    PredefinedTag("golden-hour", "Warm lighting shortly after sunrise or before sunset", "time", 12),
    PredefinedTag("blue-hour", "Twilight period with deep blue sky", "time", 13),
    PredefinedTag("night", "Nighttime photography", "time", 14),
    # Style
    PredefinedTag("black-and-white", "Monochrome imagery", "style", 20),
    PredefinedTag("vintage", "Retro or aged aesthetic", "style", 21),
    PredefinedTag("minimalist", "Simple, clean compositions", "style", 22),
    PredefinedTag("vibrant", "Bold, saturated colors", "style", 23),
    PredefinedTag("moody", "Dark, atmospheric imagery", "style", 24),
    PredefinedTag("abstract", "Non-representational art", "style", 25),
    # Technique
    PredefinedTag("macro", "Extreme close-up photography", "technique", 30),
    PredefinedTag("long-exposure", "Extended shutter speed effects", "technique", 31),
    PredefinedTag("hdr", "High dynamic range imaging", "technique", 32),
    PredefinedTag("panorama", "Wide-angle or stitched images", "technique", 33),
    PredefinedTag("aerial", "Drone or elevated perspective", "technique", 34),
    PredefinedTag("bokeh", "Aesthetic out-of-focus areas", "technique", 35),
]
