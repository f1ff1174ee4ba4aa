"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """ZenVA configuration. All values come from environment variables."""

    # Chat completion (tool-calling)
    chat_provider: str = Field(default="openai")  # "openai" or "anthropic"
    openai_api_key: str = Field(default="")
    openai_base_url: str = Field(default="https://api.groq.com/openai/v1")
    chat_model: str = Field(default="llama-3.1-70b-versatile")
    chat_temperature: float = Field(default=0.7)
    chat_max_tokens: int = Field(default=1000)
    chat_timeout_seconds: float = Field(default=30.0)
    anthropic_api_key: str = Field(default="")
    anthropic_model: str = Field(default="claude-sonnet-4-5-20250929")

    # Speech-to-text
    transcriber_strategy: str = Field(default="single_shot")  # or "upload_and_poll"
    whisper_model: str = Field(default="whisper-large-v3-turbo")
    assemblyai_api_key: str = Field(default="")
    assemblyai_base_url: str = Field(default="https://api.assemblyai.com/v2")
    transcription_poll_interval_seconds: float = Field(default=1.0)
    transcription_max_attempts: int = Field(default=30)
    silence_rms_threshold: float = Field(default=0.005)

    # Embeddings
    embedding_provider: str = Field(default="huggingface")  # or "openai"
    huggingface_api_key: str = Field(default="")
    huggingface_embedding_url: str = Field(
        default=(
            "https://api-inference.huggingface.co/pipeline/feature-extraction/"
            "sentence-transformers/all-MiniLM-L6-v2"
        )
    )
    openai_embedding_model: str = Field(default="text-embedding-3-small")
    openai_platform_base_url: str = Field(default="https://api.openai.com/v1")
    openai_platform_api_key: str = Field(default="")
    embedding_timeout_seconds: float = Field(default=20.0)

    # Retrieval
    rag_top_k: int = Field(default=3)
    rag_match_threshold: float = Field(default=0.3)
    note_min_length: int = Field(default=20)

    # Text-to-speech
    tts_provider: str = Field(default="elevenlabs")  # or "openai"
    elevenlabs_api_key: str = Field(default="")
    elevenlabs_base_url: str = Field(default="https://api.elevenlabs.io/v1")
    elevenlabs_model: str = Field(default="eleven_monolingual_v1")
    default_voice_id: str = Field(default="pNInz6obpgDQGcFmaJgB")
    openai_tts_model: str = Field(default="tts-1")
    tts_max_characters: int = Field(default=1000)
    tts_timeout_seconds: float = Field(default=30.0)
    playback_command: str = Field(default="ffplay -nodisp -autoexit -loglevel quiet -")

    # Audio capture
    sample_rate_hz: int = Field(default=16000)
    vad_threshold: float = Field(default=0.02)
    vad_debounce_ms: int = Field(default=150)
    vad_silence_ms: int = Field(default=1000)

    # Database
    database_path: Path = Field(default=Path("data/zenva.db"))

    # Turso (hosted libSQL); when set, overrides local database_path
    turso_database_url: str = Field(default="")
    turso_auth_token: str = Field(default="")

    # Auth: comma-separated "token:user_id" pairs
    api_tokens: str = Field(default="")

    # Conversation
    conversation_window_size: int = Field(default=20)
    timezone: str = Field(default="UTC")

    # Web server
    web_host: str = Field(default="0.0.0.0")
    web_port: int = Field(default=8080)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_file=_env_file(), env_file_encoding="utf-8", extra="forbid"
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    def get_api_tokens(self) -> dict[str, str]:
        """Parse API_TOKENS into a token → user_id mapping."""
        tokens: dict[str, str] = {}
        for pair in self.api_tokens.split(","):
            token, sep, user_id = pair.strip().partition(":")
            if sep and token.strip() and user_id.strip():
                tokens[token.strip()] = user_id.strip()
        return tokens

    @property
    def chat_enabled(self) -> bool:
        """Whether a chat-completion provider is configured."""
        if self.chat_provider == "anthropic":
            return bool(self.anthropic_api_key)
        return bool(self.openai_api_key)


settings = Settings()
