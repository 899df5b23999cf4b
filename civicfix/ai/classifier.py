"""
CivicFix
Hazard classifier - image → {category, severity, description}.

Provider-agnostic front for the vision model with:
    - Ordered model fallback (configured model first, then GEMINI_FALLBACK_MODELS)
    - Tolerant JSON extraction from model output
    - Default classification when every model fails (submission still succeeds)

Usage:
    from civicfix.ai.classifier import get_classifier
    result = get_classifier().classify(image_bytes, "image/jpeg", filename="pothole.jpg")
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass

from flask import current_app
from google import genai
from google.genai import types

logger = logging.getLogger(__name__)


CLASSIFICATION_PROMPT = (
    "Analyze this image for a civic issue reporting app. "
    "Identify the hazard (e.g., Pothole, Trash, Flooding, Broken Pipe). "
    "Return a JSON object strictly with these fields: "
    "{ category: string, severity: 'High'|'Medium'|'Low', description: string }. "
    "Keep the description short (under 15 words)."
)

VALID_SEVERITIES = ("High", "Medium", "Low")

DEFAULT_CATEGORY = "Other"
DEFAULT_DESCRIPTION = "No description provided"

FALLBACK_CATEGORY = "Uncategorized"
FALLBACK_SEVERITY = "Medium"
FALLBACK_DESCRIPTION = "AI analysis unavailable - please update manually"

_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


@dataclass
class Classification:
    category: str
    severity: str
    description: str
    model: str | None = None
    fallback: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


def fallback_classification() -> Classification:
    return Classification(
        category=FALLBACK_CATEGORY,
        severity=FALLBACK_SEVERITY,
        description=FALLBACK_DESCRIPTION,
        fallback=True,
    )


def parse_ai_response(text: str) -> Classification:
    """
    Extract a classification from raw model output.

    Strips markdown fences, takes the first ``{...}`` block and fills in
    defaults for missing fields. Raises ValueError when no JSON object can be
    decoded.
    """
    cleaned = _FENCE_RE.sub("", (text or "").strip())
    match = _OBJECT_RE.search(cleaned)
    if match:
        cleaned = match.group(0)
    data = json.loads(cleaned)
    if not isinstance(data, dict):
        raise ValueError("Model output is not a JSON object")

    severity = str(data.get("severity") or "Medium").strip().capitalize()
    if severity not in VALID_SEVERITIES:
        severity = "Medium"

    return Classification(
        category=str(data.get("category") or DEFAULT_CATEGORY).strip() or DEFAULT_CATEGORY,
        severity=severity,
        description=str(data.get("description") or DEFAULT_DESCRIPTION).strip() or DEFAULT_DESCRIPTION,
    )


def _is_model_unavailable(exc: Exception) -> bool:
    code = getattr(exc, "code", None) or getattr(exc, "status_code", None)
    if code == 404:
        return True
    message = str(exc).lower()
    return "404" in message or "not found" in message


# ── Providers ────────────────────────────────────────────────────────────────

class VisionProvider(ABC):
    """Abstract interface for image-classification providers."""

    name = "abstract"

    @abstractmethod
    def generate(self, image: bytes, mime_type: str, prompt: str, model: str, **kwargs) -> str:
        """Return the raw text produced by ``model`` for the image + prompt."""
        ...


class GeminiProvider(VisionProvider):
    """
    Google Gemini vision provider (google-genai SDK).

    Environment:
        GEMINI_API_KEY - obtain at https://aistudio.google.com/apikey
    """

    name = "gemini"

    SAFETY_SETTINGS = [
        types.SafetySetting(
            category=types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
            threshold=types.HarmBlockThreshold.BLOCK_NONE,
        ),
        types.SafetySetting(
            category=types.HarmCategory.HARM_CATEGORY_HARASSMENT,
            threshold=types.HarmBlockThreshold.BLOCK_NONE,
        ),
        types.SafetySetting(
            category=types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
            threshold=types.HarmBlockThreshold.BLOCK_NONE,
        ),
        types.SafetySetting(
            category=types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
            threshold=types.HarmBlockThreshold.BLOCK_NONE,
        ),
    ]

    def __init__(self, api_key: str):
        self.api_key = api_key
        self._client = None

    def _get_client(self):
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def generate(self, image: bytes, mime_type: str, prompt: str, model: str, **kwargs) -> str:
        client = self._get_client()
        config = types.GenerateContentConfig(
            temperature=kwargs.get("temperature", 0.2),
            max_output_tokens=kwargs.get("max_tokens", 512),
            safety_settings=self.SAFETY_SETTINGS,
        )
        response = client.models.generate_content(
            model=model,
            contents=[
                prompt,
                types.Part.from_bytes(data=image, mime_type=mime_type or "image/jpeg"),
            ],
            config=config,
        )
        return response.text or ""


class LocalStubProvider(VisionProvider):
    """
    Local stub that returns deterministic classifications for dev/testing.
    No API key required. Keys off the uploaded file name.
    """

    name = "local"

    _RULES = (
        (("pothole", "road", "crack"), ("Pothole", "High", "Large pothole in the road surface")),
        (("trash", "garbage", "waste", "litter"), ("Trash", "Medium", "Uncollected garbage on the roadside")),
        (("leak", "pipe", "water", "flood"), ("Water Leak", "High", "Water leaking from a broken pipe")),
        (("light", "lamp", "wire", "power"), ("Street Light", "Low", "Street light not working")),
    )

    def generate(self, image: bytes, mime_type: str, prompt: str, model: str, **kwargs) -> str:
        hint = (kwargs.get("filename") or "").lower()
        category, severity, description = ("Other", "Medium", "Unidentified civic issue")
        for keywords, result in self._RULES:
            if any(k in hint for k in keywords):
                category, severity, description = result
                break
        return json.dumps({"category": category, "severity": severity, "description": description})


# ── Classifier ───────────────────────────────────────────────────────────────

class HazardClassifier:
    """
    Runs the model chain until one model yields a parseable classification.

    No backoff between models; each failure moves straight to the next one.
    """

    def __init__(self, provider: VisionProvider, models: list[str]):
        self.provider = provider
        self.models = list(dict.fromkeys(m for m in models if m))

    def classify(self, image: bytes, mime_type: str, filename: str | None = None) -> Classification:
        for model in self.models:
            try:
                text = self.provider.generate(
                    image, mime_type, CLASSIFICATION_PROMPT, model, filename=filename,
                )
                result = parse_ai_response(text)
            except Exception as exc:
                if _is_model_unavailable(exc):
                    logger.warning("Model %s not available, trying next model", model)
                else:
                    logger.error("Classification with model %s failed: %s", model, exc)
                continue
            result.model = model
            logger.info(
                "Classified image via %s/%s: %s (%s)",
                self.provider.name, model, result.category, result.severity,
            )
            return result

        logger.error("All %d models failed; using default classification", len(self.models))
        return fallback_classification()


def model_chain(config) -> list[str]:
    """Configured model first, then fallbacks; duplicates removed, order kept."""
    fallbacks = config.get("GEMINI_FALLBACK_MODELS") or []
    if isinstance(fallbacks, str):
        fallbacks = [m.strip() for m in fallbacks.split(",")]
    return list(dict.fromkeys(m for m in [config.get("GEMINI_MODEL"), *fallbacks] if m))


def get_classifier() -> HazardClassifier:
    """Build the classifier for the current app configuration."""
    config = current_app.config
    provider_name = (config.get("AI_PROVIDER") or "gemini").lower()
    api_key = config.get("GEMINI_API_KEY") or ""

    if provider_name == "gemini" and api_key:
        return HazardClassifier(GeminiProvider(api_key), model_chain(config))

    if provider_name == "gemini":
        logger.warning("GEMINI_API_KEY not set; using local stub classifier")
    return HazardClassifier(LocalStubProvider(), ["local-stub"])


def describe_configuration(config) -> dict:
    """Diagnostic view of the AI setup. Never includes the key itself."""
    api_key = config.get("GEMINI_API_KEY") or ""
    provider = (config.get("AI_PROVIDER") or "gemini").lower()
    effective = "gemini" if provider == "gemini" and api_key else "local"
    return {
        "provider": provider,
        "effective_provider": effective,
        "api_key_present": bool(api_key),
        "api_key_length": len(api_key),
        "models": model_chain(config) if effective == "gemini" else ["local-stub"],
    }
