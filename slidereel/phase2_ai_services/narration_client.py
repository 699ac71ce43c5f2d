import base64
import json
import logging
import re
from typing import NamedTuple, Optional, Union

from openai import OpenAI, OpenAIError

from slidereel.config import settings
from slidereel.errors import NarrationError
from slidereel.models import ScriptLevel, VoiceName

logger = logging.getLogger(__name__)

# Slide text shown while a script is being generated or after it failed; never voiced
PLACEHOLDER_SCRIPT_PREFIXES = ("Analyzing slide", "Error:")

DEFAULT_SCRIPT = "A script could not be generated for this slide."
DEFAULT_SUBTITLE = "No subtitle"

AUDIENCE_PROMPTS = {
    ScriptLevel.EXPERT: "experts in the field (use technical terms, precise and concise wording)",
    ScriptLevel.UNIVERSITY: "university students (academic, informative tone)",
    ScriptLevel.ELEMENTARY: "elementary school children (simple, friendly, easy words)",
    ScriptLevel.SENIOR: "senior citizens (polite, easy to follow, calmly paced sentences)",
}


class ScriptResult(NamedTuple):
    script: str
    subtitle: str


def clean_json_response(text: str) -> str:
    """Strip markdown code fences models sometimes wrap around JSON."""
    return re.sub(r"```json\s?|```", "", text).strip()


def is_placeholder_text(text: str) -> bool:
    return text.startswith(PLACEHOLDER_SCRIPT_PREFIXES)


def _detect_image_mime(image_bytes: bytes) -> str:
    if image_bytes.startswith(b"\x89PNG"):
        return "image/png"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    if image_bytes[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    return "image/jpeg"


class NarrationService:
    """Service for OpenAI API integration (vision script writing + TTS)."""

    def __init__(self, api_key: Optional[str] = None, client: Optional[OpenAI] = None):
        if client is not None:
            self.client = client
        else:
            api_key = api_key if api_key is not None else settings.OPENAI_API_KEY

            if not api_key:
                raise ValueError(
                    "OpenAI API key not configured. "
                    "Please set OPENAI_API_KEY in your .env file or environment variables."
                )
            if not api_key.startswith("sk-"):
                raise ValueError(
                    f"OpenAI API key format is invalid. "
                    f"API keys must start with 'sk-'. "
                    f"Please check your OPENAI_API_KEY in .env file."
                )
            placeholder_values = ["sk-...", "sk-", "your-api-key-here", "OPENAI_API_KEY"]
            if api_key.lower() in [p.lower() for p in placeholder_values] or len(api_key) < 20:
                raise ValueError(
                    f"OpenAI API key appears to be a placeholder or too short (length: {len(api_key)}). "
                    f"Please set a valid OPENAI_API_KEY in your .env file. "
                    f"You can find your API key at https://platform.openai.com/account/api-keys"
                )
            self.client = OpenAI(api_key=api_key)

        self.script_model = settings.OPENAI_SCRIPT_MODEL
        self.tts_model = settings.OPENAI_TTS_MODEL
        logger.info(f"NarrationService initialized (Script model: {self.script_model}, TTS model: {self.tts_model})")

    def _script_prompt(self, level: ScriptLevel) -> str:
        audience = AUDIENCE_PROMPTS.get(level, "the general public")
        return (
            f"Visually analyze this slide and write an engaging presentation narration in "
            f"{settings.NARRATION_LANGUAGE} for {audience}. "
            f"Use a spoken style and at most 3 sentences. "
            f"Respond strictly with this JSON object:\n"
            f'{{"script": "full narration text describing the slide", '
            f'"subtitle": "a short one-line summary caption shown at the bottom of the screen"}}'
        )

    def generate_script(self, image_bytes: bytes, level: Union[ScriptLevel, str] = ScriptLevel.UNIVERSITY) -> ScriptResult:
        """
        Write a narration script and a one-line subtitle for a slide image.

        Args:
            image_bytes: Encoded slide image (png/jpeg/...).
            level: Target audience.

        Returns:
            ScriptResult(script, subtitle)

        Raises:
            NarrationError: the model returned nothing or something that is not a JSON object.
        """
        level = ScriptLevel(level)
        image_b64 = base64.b64encode(image_bytes).decode("ascii")
        data_url = f"data:{_detect_image_mime(image_bytes)};base64,{image_b64}"

        logger.info(f"Calling OpenAI vision model for script (level: {level.value})...")
        try:
            response = self.client.chat.completions.create(
                model=self.script_model,
                response_format={"type": "json_object"},
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "image_url", "image_url": {"url": data_url}},
                            {"type": "text", "text": self._script_prompt(level)},
                        ],
                    }
                ],
            )
        except OpenAIError as e:
            logger.error(f"Script generation request failed: {e}", exc_info=True)
            raise NarrationError(f"Script generation failed: {e}") from e

        raw_text = response.choices[0].message.content if response.choices else None
        if not raw_text or not raw_text.strip():
            raise NarrationError("Empty response from script model")

        try:
            result = json.loads(clean_json_response(raw_text))
        except json.JSONDecodeError as e:
            logger.error(f"Script model returned invalid JSON: {raw_text[:200]}")
            raise NarrationError("Script model returned malformed JSON") from e
        if not isinstance(result, dict):
            raise NarrationError("Script model did not return a JSON object")

        script = str(result.get("script") or "").strip() or DEFAULT_SCRIPT
        subtitle = str(result.get("subtitle") or "").strip() or DEFAULT_SUBTITLE
        logger.info(f"Script generated ({len(script)} characters)")
        return ScriptResult(script=script, subtitle=subtitle)

    def generate_speech(self, text: str, voice: Union[VoiceName, str] = VoiceName.ONYX) -> Optional[bytes]:
        """
        Synthesize narration audio.

        Returns:
            mp3 bytes, or None when nothing should be voiced (blank/placeholder text)
            or the TTS call failed. None is never a hard failure for callers.
        """
        clean_text = (text or "").strip()
        if not clean_text or is_placeholder_text(clean_text):
            logger.info("Skipping speech generation for empty or placeholder text")
            return None

        voice = VoiceName(voice)
        logger.info(f"Calling OpenAI TTS API (Voice: {voice.value})...")
        try:
            response = self.client.audio.speech.create(
                model=self.tts_model,
                voice=voice.value,
                input=clean_text,
                response_format="mp3",
            )
            audio = response.content
        except OpenAIError as e:
            logger.error(f"TTS request failed: {e}", exc_info=True)
            return None

        if not audio:
            logger.warning("TTS returned no audio data")
            return None
        logger.info(f"Speech generated ({len(audio)} bytes)")
        return audio
