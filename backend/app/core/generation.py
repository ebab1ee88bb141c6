"""Static generation constants shared by the chat and image pipelines."""
import re
from types import MappingProxyType

# Image generation request defaults (SD Forge txt2img).
IMAGE_WIDTH = 832
IMAGE_HEIGHT = 1216
IMAGE_SAMPLER = "DPM++ 2M"
IMAGE_SCHEDULER = "karras"
IMAGE_SEED = -1

# Companion visual state used for new companions and after a memory wipe.
DEFAULT_COMPANION_STATE = MappingProxyType(
    {
        "outfit": "casual clothes",
        "location": "living room",
        "action": "looking at viewer",
        "expression": "neutral",
        "lighting": "cinematic lighting",
    }
)

# LLM sampling settings.
LLM_CHAT_CONFIG = MappingProxyType({"temperature": 0.9, "max_tokens": 150, "top_p": 0.9})
CONTEXT_ANALYSIS_CONFIG = MappingProxyType(
    {"temperature": 0.2, "max_tokens": 600, "history_limit": 8}
)

# Number of stored messages loaded as chat history for one turn.
CHAT_HISTORY_LIMIT = 10

# Negative prompt pieces used by the companion image pipeline.
BASE_NEGATIVE = (
    "(bad quality:1.15), (worst quality:1.3), neghands, monochrome, 3d, long neck, "
    "ugly fingers, ugly hands, ugly, easynegative, text, watermark, deformed, mutated, "
    "cropped, ugly, disfigured, deformed face, ugly face, non-detailed"
)
COUPLE_NEGATIVE_ADDITIONS = "extra limbs, extra arms, floating limbs"
SOLO_NEGATIVE_ADDITIONS = (
    "multiple views, boyfriend, 1boy, man, male, penis, multiple people, 2boys, "
    "beard, male focus, from behind"
)
NUDE_NEGATIVE_ADDITIONS = "clothes, clothing, shirt, pants, bra, panties"

# Content detection.
EXPLICIT_KEYWORDS = re.compile(
    r"naked|nude|unclothed|topless|bottomless|pussy|hole|anus|anal|spreading|spread"
    r"|asscheeks|cheek|exposed|undressing|stripping|no clothes",
    re.IGNORECASE,
)
VIRTUAL_CONTEXT = re.compile(
    r"pov|viewer|eyes|from above|selfie|recording|filming|phone|camera|mirror",
    re.IGNORECASE,
)
LAZY_OUTFIT = re.compile(r"no specified|unknown|clothing|casual|n/a", re.IGNORECASE)

# Clothing keywords for outfit layering.
UNDERWEAR_KEYWORDS = (
    "thong",
    "panties",
    "bra",
    "sports bra",
    "underwear",
    "lingerie",
    "boxers",
    "briefs",
)
OUTERWEAR_KEYWORDS = (
    "hoodie",
    "sweatshirt",
    "jacket",
    "coat",
    "shirt",
    "t-shirt",
    "top",
    "shorts",
    "pants",
    "jeans",
    "skirt",
    "dress",
    "leggings",
    "sweater",
)
