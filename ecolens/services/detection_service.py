"""
Detection Service - classifies waste items in a photo

Provider chain:
- Gemini generateContent with a JSON response schema (primary)
- Clarifai general image model (secondary)
- Fallback catalog: synthetic 1-2 items so the client always has results

Configuration via environment variables:
- DETECTION_PROVIDER: "gemini", "clarifai", "demo", or "auto" (default)
- GEMINI_API_KEY / GEMINI_MODEL
- CLARIFAI_API_KEY / CLARIFAI_MODEL_ID
- VISION_TIMEOUT_SEC: timeout for every provider call
"""
import base64
import hashlib
import json
import logging
import math
import random
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ecolens.config import is_key_configured, settings
from ecolens.schemas.schemas import BinType, DetectionItem

logger = logging.getLogger(__name__)


# Order matters: earlier rules win
REWARD_RULES: List[Tuple[Tuple[str, ...], int]] = [
    (("plastic", "bottle"), 15),
    (("glass", "jar"), 12),
    (("metal", "aluminum", "can", "tin"), 18),
    (("paper", "cardboard", "newspaper", "magazine", "carton", "box"), 8),
]

DEFAULT_BIN_REWARDS = {
    BinType.recyclable: 10,
    BinType.compost: 7,
    BinType.landfill: 5,
}

RECYCLABLE_KEYWORDS = (
    "plastic", "bottle", "glass", "jar", "metal", "aluminum", "can", "tin",
    "paper", "cardboard", "newspaper", "magazine", "carton", "box",
    "container", "packaging", "bag",
)

COMPOST_KEYWORDS = (
    "organic", "food", "fruit", "vegetable", "peel", "compost", "coffee", "leaf",
)

RECOGNIZED_ITEMS = (
    "bottle", "plastic", "can", "aluminum", "paper", "cardboard", "glass",
    "container", "packaging", "newspaper", "magazine", "box", "tin",
    "water bottle", "soda can", "food container", "milk carton",
)

BIN_COLORS = {
    BinType.recyclable: "#3B82F6",
    BinType.compost: "#10B981",
    BinType.landfill: "#6B7280",
}

FALLBACK_CATALOG = (
    "plastic water bottle",
    "aluminum soda can",
    "glass jar",
    "cardboard box",
    "newspaper",
    "milk carton",
    "food scraps",
)

GEMINI_PROMPT = """Analyze this image and identify any recyclable items. For each item detected, provide:
1. Item name (e.g., "plastic bottle", "aluminum can", "cardboard box")
2. Confidence level (0-100)
3. Whether it's recyclable (true/false)
4. Which bin type (recyclable, compost, landfill)
5. Material type (plastic, metal, glass, paper, organic)

Focus on common recyclable items: plastic bottles, containers and bags; metal and
aluminum cans; glass bottles and jars; paper, cardboard and newspapers; organic waste.

Only include items you can clearly identify with confidence above 70%."""

GEMINI_RESPONSE_SCHEMA = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "name": {"type": "string"},
            "confidence": {"type": "number"},
            "isRecyclable": {"type": "boolean"},
            "binType": {"type": "string", "enum": ["recyclable", "compost", "landfill"]},
            "material": {"type": "string"},
        },
        "required": ["name", "confidence", "isRecyclable", "binType", "material"],
    },
}

MIN_GEMINI_CONFIDENCE = 70
MIN_CLARIFAI_VALUE = 0.6


# ============================================
# Keyword rules
# ============================================
def get_bin_type(item_name: str) -> BinType:
    name = item_name.lower()
    if any(k in name for k in RECYCLABLE_KEYWORDS):
        return BinType.recyclable
    if any(k in name for k in COMPOST_KEYWORDS):
        return BinType.compost
    return BinType.landfill


def get_coins_reward(item_name: str) -> int:
    """Base reward for an item name; first matching rule wins"""
    name = item_name.lower()
    for keywords, reward in REWARD_RULES:
        if any(k in name for k in keywords):
            return reward
    return DEFAULT_BIN_REWARDS[get_bin_type(name)]


def get_bin_color(bin_type) -> str:
    return BIN_COLORS.get(BinType(bin_type), BIN_COLORS[BinType.landfill])


def get_item_category(item_name: str) -> str:
    """Material bucket used for the per-material stats counters"""
    name = item_name.lower()
    if any(k in name for k in ("plastic", "bottle", "bag")):
        return "plastic"
    if any(k in name for k in ("paper", "cardboard")):
        return "paper"
    if "glass" in name:
        return "glass"
    if any(k in name for k in ("metal", "aluminum")):
        return "metal"
    return "other"


def is_recyclable_item(item_name: str) -> bool:
    name = item_name.strip().lower()
    if not name:
        return False
    return any(item in name or name in item for item in RECOGNIZED_ITEMS)


# ============================================
# Image helpers
# ============================================
def split_data_url(image_data: str) -> Tuple[str, str]:
    """Return (mime_type, base64 payload) for a data URL or bare base64 string"""
    if image_data.startswith("data:") and "," in image_data:
        header, payload = image_data.split(",", 1)
        mime_type = header[5:].split(";")[0] or "image/jpeg"
        return mime_type, payload
    return "image/jpeg", image_data


def hash_image(image_data: str) -> str:
    """SHA-256 of the decoded image bytes, or of the raw string when not base64"""
    _, payload = split_data_url(image_data)
    try:
        raw = base64.b64decode(payload, validate=True)
    except ValueError:
        raw = image_data.encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


def build_item(name: str, confidence: float, source: str, bin_type: Optional[str] = None) -> DetectionItem:
    resolved = BinType(bin_type) if bin_type in BinType.__members__ else get_bin_type(name)
    return DetectionItem(
        name=name,
        confidence=max(0, min(100, round(confidence))),
        bin_type=resolved,
        bin_color=get_bin_color(resolved),
        coins_reward=get_coins_reward(name),
        source=source,
    )


class DetectionService:
    """
    Classifies waste items in an image.

    In "auto" mode tries Gemini, then Clarifai, then the fallback catalog.
    Never raises and never returns an empty list.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.provider = settings.DETECTION_PROVIDER.lower()
        self.gemini_url = settings.GEMINI_API_URL
        self.gemini_key = settings.GEMINI_API_KEY
        self.gemini_model = settings.GEMINI_MODEL
        self.clarifai_url = settings.CLARIFAI_API_URL
        self.clarifai_key = settings.CLARIFAI_API_KEY
        self.clarifai_model = settings.CLARIFAI_MODEL_ID
        self.timeout = settings.VISION_TIMEOUT_SEC
        self.rng = rng or random.Random()

        logger.info(f"Detection Service initialized with provider: {self.provider}")

    @property
    def gemini_configured(self) -> bool:
        return is_key_configured(self.gemini_key)

    @property
    def clarifai_configured(self) -> bool:
        return is_key_configured(self.clarifai_key)

    def provider_status(self) -> Dict[str, bool]:
        return {"gemini": self.gemini_configured, "clarifai": self.clarifai_configured}

    async def _detect_gemini(self, mime_type: str, payload: str) -> List[DetectionItem]:
        """Classify with Gemini generateContent"""
        if not self.gemini_configured:
            logger.info("Gemini API key not configured, skipping")
            return []

        body = {
            "contents": [{
                "parts": [
                    {"text": GEMINI_PROMPT},
                    {"inlineData": {"mimeType": mime_type, "data": payload}},
                ]
            }],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": GEMINI_RESPONSE_SCHEMA,
            },
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.gemini_url}/models/{self.gemini_model}:generateContent",
                    params={"key": self.gemini_key},
                    json=body
                )
                response.raise_for_status()
                result = response.json()
        except httpx.TimeoutException:
            logger.error("Gemini detection request timed out")
            return []
        except Exception as e:
            logger.error(f"Gemini detection failed: {e}")
            return []

        try:
            text = result["candidates"][0]["content"]["parts"][0]["text"]
            raw_items = json.loads(text)
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.error(f"Failed to parse Gemini response: {e}")
            return []

        items = []
        for raw in raw_items if isinstance(raw_items, list) else []:
            try:
                confidence = float(raw.get("confidence", 0))
                name = str(raw["name"]).strip()
            except (AttributeError, KeyError, TypeError, ValueError):
                continue
            if not math.isfinite(confidence):
                continue
            if name and confidence >= MIN_GEMINI_CONFIDENCE:
                items.append(build_item(name, confidence, "gemini", raw.get("binType")))
        return items

    async def _detect_clarifai(self, payload: str) -> List[DetectionItem]:
        """Classify with the Clarifai general model"""
        if not self.clarifai_configured:
            logger.info("Clarifai API key not configured, skipping")
            return []

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.clarifai_url}/models/{self.clarifai_model}/outputs",
                    headers={
                        "Authorization": f"Key {self.clarifai_key}",
                        "Content-Type": "application/json",
                    },
                    json={"inputs": [{"data": {"image": {"base64": payload}}}]}
                )
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException:
            logger.error("Clarifai detection request timed out")
            return []
        except Exception as e:
            logger.error(f"Clarifai detection failed: {e}")
            return []

        try:
            outputs = data.get("outputs") or [{}]
            concepts = (outputs[0].get("data") or {}).get("concepts") or []
            kept = []
            for concept in concepts:
                name = str(concept["name"]).strip()
                value = float(concept.get("value", 0))
                if math.isfinite(value) and value > MIN_CLARIFAI_VALUE and is_recyclable_item(name):
                    kept.append((name, value))
        except (AttributeError, KeyError, IndexError, TypeError, ValueError) as e:
            logger.error(f"Failed to parse Clarifai response: {e}")
            return []
        return [build_item(name, value * 100, "clarifai") for name, value in kept[:3]]

    def fallback_items(self) -> List[DetectionItem]:
        """Synthesize 1-2 plausible items from the fixed catalog"""
        names = self.rng.sample(FALLBACK_CATALOG, self.rng.randint(1, 2))
        items = []
        for name in names:
            item = build_item(name, self.rng.randint(75, 95), "fallback")
            jitter = self.rng.randint(-2, 2)
            items.append(item.model_copy(update={"coins_reward": max(1, item.coins_reward + jitter)}))
        return items

    async def detect(self, image_data: str) -> List[DetectionItem]:
        """
        Classify the items in an image.

        Args:
            image_data: data URL or bare base64 image

        Returns:
            Non-empty list of detection items
        """
        mime_type, payload = split_data_url(image_data)

        if self.provider in ("auto", "gemini"):
            items = await self._detect_gemini(mime_type, payload)
            if items:
                logger.info(f"Gemini detected {len(items)} item(s)")
                return items

        if self.provider in ("auto", "clarifai"):
            items = await self._detect_clarifai(payload)
            if items:
                logger.info(f"Clarifai detected {len(items)} item(s)")
                return items

        items = self.fallback_items()
        logger.info(f"Using fallback detection results: {[i.name for i in items]}")
        return items


# Singleton instance
detection_service = DetectionService()
