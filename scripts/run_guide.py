import argparse
import asyncio
import logging

from pageguide.agent.browser import BrowserSession
from pageguide.agent.llm_client import create_answering_client
from pageguide.agent.orchestrator import run_guided_request
from pageguide.config import settings


async def _run(args) -> None:
    try:
        answerer = create_answering_client()
    except ValueError as exc:
        logging.warning("answering_unavailable reason=%s", exc)
        answerer = None

    async with BrowserSession(headless=args.headless) as session:
        await session.goto(args.url)
        result = await run_guided_request(
            session.page,
            args.question,
            answerer=answerer,
            highlighter=session.highlighter,
            with_audio=not args.no_audio,
        )

        print(result.answer)
        if result.target:
            print(f"Target: {result.target.label} ({result.target.selector}) source={result.target.source}")
        if result.highlight and not result.highlight.ok:
            print(f"Highlight failed: {result.highlight.reason}")
        if result.speech_error:
            print(f"Speech failed: {result.speech_error}")
        if result.audio and args.audio_out:
            with open(args.audio_out, "wb") as fh:
                fh.write(result.audio)
            print(f"Wrote {len(result.audio)} bytes of audio to {args.audio_out}")

        # Keep the window open while the highlight is on screen.
        if result.highlight and result.highlight.ok and not session.headless:
            await asyncio.sleep(settings.highlight_timeout_s)


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--url", required=True, help="Page to open")
    parser.add_argument("--question", required=True, help="What the user wants to do on the page")
    parser.add_argument("--audio-out", help="Write the spoken answer as a WAV file")
    parser.add_argument("--no-audio", action="store_true", help="Skip speech synthesis")
    parser.add_argument("--headless", action=argparse.BooleanOptionalAction, default=None)
    args = parser.parse_args()

    logging.basicConfig(level=settings.log_level)
    asyncio.run(_run(args))


if __name__ == "__main__":
    main()
