"""Known backend presets."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ProviderPreset:
    key: str
    display_name: str
    base_url: str
    default_port: int


PROVIDER_PRESETS: dict[str, ProviderPreset] = {
    "zai": ProviderPreset(
        key="zai",
        display_name="Z.AI",
        base_url="https://api.z.ai/api/paas/v4",
        default_port=9000,
    ),
    "xai": ProviderPreset(
        key="xai",
        display_name="X.AI",
        base_url="https://api.x.ai/v1",
        default_port=9001,
    ),
}

CUSTOM_PROVIDER = "custom"


def provider_choices() -> list[str]:
    return [*PROVIDER_PRESETS, CUSTOM_PROVIDER]


def resolve_provider(name: str) -> ProviderPreset | None:
    """Return the preset registered under *name*, or None for ``custom``.

    Lookup is case-insensitive and ignores ``-``/``_`` so ``z-ai`` and ``Z_AI``
    both resolve to ``zai``.
    """

    key = (name or "").strip().lower().replace("-", "").replace("_", "")
    if key == CUSTOM_PROVIDER:
        return None
    preset = PROVIDER_PRESETS.get(key)
    if preset is None:
        raise ValueError(f"unknown provider: {name}")
    return preset
