"""Cached speech synthesis shared by narration and conversation."""

from services.audio_cache.cache import AudioCache, GeneratedAudio
from services.audio_cache.fingerprint import audio_fingerprint
from services.providers.router import ProviderRouter
from shared.enums import Capability
from shared.models import AudioCacheEntry

AUDIO_URL_PREFIX = "/api/audio"


def audio_url_for(fingerprint: str | None) -> str | None:
    if not fingerprint:
        return None
    return f"{AUDIO_URL_PREFIX}/{fingerprint}"


async def synthesize_cached(
    router: ProviderRouter,
    cache: AudioCache,
    source_asset_hash: str,
    text: str,
) -> AudioCacheEntry:
    """Return audio for ``text``, synthesizing it at most once per fingerprint."""
    fingerprint = audio_fingerprint(source_asset_hash, text)

    async def _generate() -> GeneratedAudio:
        result = await router.generate(Capability.SPEECH, text)
        speech = result.speech
        return GeneratedAudio(
            data=speech.data,
            mime_type=speech.mime_type,
            generated_by=result.provider_id,
            synthetic=result.synthetic,
        )

    return await cache.get_or_generate(fingerprint, _generate)
