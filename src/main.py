"""ZenVA entry point.

``zenva serve`` (default) runs the HTTP API; ``zenva talk --user ID``
runs push-to-talk voice turns against the local microphone.
"""

import argparse
import asyncio
import logging

from src.config import settings

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logger = logging.getLogger(__name__)


async def _serve() -> None:
    from src.web.server import VoiceServer

    server = VoiceServer()
    await server.start()
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()


async def _talk(user_id: str) -> None:
    from src.voice.capture import AudioCapture
    from src.voice.pipeline import build_pipeline
    from src.voice.playback import AudioPlayer
    from src.voice.session import VoiceSession

    session = VoiceSession(user_id, build_pipeline(), player=AudioPlayer())
    capture = AudioCapture()
    logger.info("Voice session started for %s (chat enabled: %s)", user_id, settings.chat_enabled)

    try:
        while True:
            await asyncio.to_thread(input, "Press Enter and speak (Ctrl+C to quit) ")
            result = await session.listen(capture)
            if result.transcript:
                print(f"you:   {result.transcript}")
            print(f"zenva: {result.reply or result.error}")
            for notice in result.notices:
                print(f"       ({notice})")
    finally:
        if session.player is not None:
            await session.player.stop()


def main() -> None:
    parser = argparse.ArgumentParser(prog="zenva", description="ZenVA voice assistant")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("serve", help="run the HTTP API (default)")
    talk = sub.add_parser("talk", help="talk to the assistant through the microphone")
    talk.add_argument("--user", required=True, help="user id the turns act on behalf of")
    args = parser.parse_args()

    try:
        if args.command == "talk":
            asyncio.run(_talk(args.user))
        else:
            logger.info("Starting ZenVA API with chat provider %s...", settings.chat_provider)
            asyncio.run(_serve())
    except KeyboardInterrupt:
        logger.info("Shutting down")


if __name__ == "__main__":
    main()
