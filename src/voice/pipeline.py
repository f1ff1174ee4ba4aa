"""Wiring of the per-turn components."""

from __future__ import annotations

from dataclasses import dataclass

from src.llm.client import CommandInterpreter
from src.memory.embeddings import Embedder
from src.memory.retriever import MemoryRetriever
from src.store.store import DataStore
from src.tools import registry
from src.tools.dispatch import ActionDispatcher
from src.voice.synthesizer import SpeechSynthesizer
from src.voice.transcriber import Transcriber, make_transcriber


@dataclass
class VoicePipeline:
    """The components one voice turn runs through, shared across sessions.

    Holds no per-user state; every call takes the user id explicitly.
    """

    store: DataStore
    transcriber: Transcriber
    retriever: MemoryRetriever
    interpreter: CommandInterpreter
    dispatcher: ActionDispatcher
    synthesizer: SpeechSynthesizer


def build_pipeline(store: DataStore | None = None) -> VoicePipeline:
    """Build the pipeline from settings."""
    store = store or DataStore.get()
    retriever = MemoryRetriever(store, Embedder())
    return VoicePipeline(
        store=store,
        transcriber=make_transcriber(),
        retriever=retriever,
        interpreter=CommandInterpreter(registry),
        dispatcher=ActionDispatcher(store, retriever, registry),
        synthesizer=SpeechSynthesizer(),
    )
