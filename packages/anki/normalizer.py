"""HTML cleanup and positional field parsing for vocabulary notes."""

import html
import re

from pydantic import BaseModel

# Regex patterns
HTML_TAG_PATTERN = re.compile(r"<[^>]+>")
SOUND_PATTERN = re.compile(r"\[sound:([^\]]+)\]")
IMAGE_SRC_PATTERN = re.compile(r"<img[^>]*?\bsrc=[\"']([^\"']+)[\"']", re.IGNORECASE)
# Pitch-accent markup embeds SVG whose text would otherwise leak into the reading
SVG_PATTERN = re.compile(r"<svg\b.*?</svg>", re.DOTALL | re.IGNORECASE)


def strip_html(text: str | None) -> str:
    """Strip HTML tags and decode entities, keeping only the text content.

    Args:
        text: HTML text to strip.

    Returns:
        Plain text with HTML removed and surrounding whitespace trimmed.
    """
    if not text:
        return ""

    result = SVG_PATTERN.sub("", text)
    result = HTML_TAG_PATTERN.sub("", result)
    result = html.unescape(result)
    result = result.replace("\xa0", " ")

    return result.strip()


def dedupe_reading(reading: str) -> str:
    """Collapse a reading that is its own half repeated ("さんさん" -> "さん")."""
    if reading and len(reading) % 2 == 0:
        half = len(reading) // 2
        if reading[:half] == reading[half:]:
            return reading[:half]
    return reading


def extract_sound_filename(value: str | None) -> str | None:
    """Return NAME from the first ``[sound:NAME]`` reference, if any."""
    if not value:
        return None
    match = SOUND_PATTERN.search(value)
    return match.group(1) if match else None


def extract_image_filename(value: str | None) -> str | None:
    """Return NAME from the first ``<img src="NAME">`` reference, if any."""
    if not value:
        return None
    match = IMAGE_SRC_PATTERN.search(value)
    return match.group(1) if match else None


class VocabularyFields(BaseModel):
    """Cleaned view of the nine positional vocabulary note fields.

    Field order in the deck:
        0 word, 1 meaning, 2 reading (with pitch accent), 3 word audio,
        4 sentence, 5 sentence reading, 6 sentence meaning,
        7 sentence audio, 8 image
    """

    word: str = ""
    meaning: str = ""
    reading: str = ""
    sentence: str = ""
    sentence_reading: str = ""
    sentence_meaning: str = ""
    audio_filename: str | None = None
    sentence_audio_filename: str | None = None
    image_filename: str | None = None

    @classmethod
    def from_fields(cls, fields: list[str]) -> "VocabularyFields":
        """Parse raw note fields; missing trailing fields count as empty."""
        padded = list(fields) + [""] * (9 - len(fields))
        (
            word,
            meaning,
            reading,
            word_audio,
            sentence,
            sentence_reading,
            sentence_meaning,
            sentence_audio,
            image,
        ) = padded[:9]

        return cls(
            word=strip_html(word),
            meaning=strip_html(meaning),
            reading=dedupe_reading(strip_html(reading)),
            sentence=strip_html(sentence),
            sentence_reading=strip_html(sentence_reading),
            sentence_meaning=strip_html(sentence_meaning),
            audio_filename=extract_sound_filename(word_audio),
            sentence_audio_filename=extract_sound_filename(sentence_audio),
            image_filename=extract_image_filename(image),
        )
