"""Named session presets."""

from dataclasses import dataclass
from typing import Any, Dict

from ..errors import ConfigurationError


@dataclass(frozen=True)
class Preset:
    """A named bundle of session settings plus how the session presents itself."""
    name: str
    session: Dict[str, Any]
    final_label: str
    banner: str


PRESETS: Dict[str, Preset] = {
    "standard": Preset(
        name="standard",
        session={
            "sample_rate": 8000,
            "channels": 1,
            "encoding": "linear16",
            "model": "nova-2",
            "smart_format": True,
            "punctuate": False,
            "interim_results": True,
            "endpointing_ms": 200,
            "utterance_end_ms": 1000,
        },
        final_label="FINAL: ",
        banner="Starting microphone...",
    ),
    "ultra-low": Preset(
        name="ultra-low",
        session={
            "sample_rate": 11000,
            "channels": 1,
            "encoding": "linear16",
            "model": "nova-3",
            "smart_format": False,
            "punctuate": False,
            "interim_results": True,
            "endpointing_ms": 150,
            "utterance_end_ms": 1000,
        },
        final_label="ULTRA-LOW: ",
        banner="Starting microphone (Ultra-Low Latency Mode: 11kHz with Nova-3)...",
    ),
}

DEFAULT_PRESET = "standard"


def get_preset(name: str) -> Preset:
    """Look up a preset by name.

    Raises:
        ConfigurationError: If no preset has that name
    """
    try:
        return PRESETS[name]
    except KeyError:
        raise ConfigurationError(f"Unknown preset '{name}'",
                                 f"available presets: {', '.join(PRESETS)}") from None
