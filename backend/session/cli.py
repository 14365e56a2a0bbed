"""
Run one admin or viewer "tab" as a process joined to the relay.

    python -m session.cli admin [--ai]
    python -m session.cli viewer [--name NAME]

The relay (server/main.py) must already be running. The admin opens the
camera, microphone and speaker of this machine; the viewer prints chat and
stream status, and sends every line typed on stdin as a comment.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from dotenv import load_dotenv

from adapters.live.gemini import GeminiLiveEndpoint
from adapters.live.prompts import build_narrator_instruction
from bus.relay_client import RelayBusMember, RelayConnectionError
from config import AppConfig
from protocol.messages import ChatMessage
from session.admin import AdminController
from session.chat import DEFAULT_DISPLAY_NAME
from session.viewer import ViewerController
from video.camera import OpenCVCameraSource


def _print_comment(message: ChatMessage) -> None:
    print(f"[chat] {message.user}: {message.text}", file=sys.stderr)


def build_admin(config: AppConfig, member: RelayBusMember) -> AdminController:
    # Viewers never touch the sound card, so PortAudio loads only here.
    from audio.devices import SoundDeviceMicrophone, SoundDeviceOutput  # pylint: disable=import-outside-toplevel

    endpoint = GeminiLiveEndpoint(
        api_key=config.gemini_api_key,
        model=config.gemini_model,
        voice=config.gemini_voice,
        system_instruction=build_narrator_instruction(config.narration_language),
    )
    return AdminController(
        member=member,
        camera=OpenCVCameraSource(index=config.camera_index),
        microphone=SoundDeviceMicrophone(),
        endpoint=endpoint,
        output=SoundDeviceOutput(),
        on_comment=_print_comment,
    )


async def run_admin(config: AppConfig, *, ai: bool) -> None:
    member = RelayBusMember(config.relay_url, topic=config.bus_topic)
    await member.connect()

    admin = build_admin(config, member)
    admin.attach()
    try:
        await admin.start_stream()
        print(f"[admin] {admin.status_message}", file=sys.stderr)
        if ai and admin.status.is_live:
            await admin.enable_ai()
            print(f"[admin] {admin.ai_status_message}", file=sys.stderr)
        await asyncio.Event().wait()
    finally:
        admin.close()


async def run_viewer(config: AppConfig, *, name: str) -> None:
    member = RelayBusMember(config.relay_url, topic=config.bus_topic)
    await member.connect()

    viewer = ViewerController(member=member, display_name=name, on_comment=_print_comment)
    viewer.attach()
    print(f"[viewer] {viewer.waiting_message}", file=sys.stderr)

    loop = asyncio.get_running_loop()
    try:
        while True:
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line:
                break
            if viewer.submit_comment(line) is None:
                print("[viewer] empty comment ignored", file=sys.stderr)
            state = "LIVE" if viewer.is_live else viewer.waiting_message
            print(f"[viewer] {state} ({viewer.frames_received} frames)", file=sys.stderr)
    finally:
        viewer.close()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Broadcast session (admin or viewer)")
    sub = parser.add_subparsers(dest="role", required=True)

    admin_p = sub.add_parser("admin", help="capture and broadcast")
    admin_p.add_argument("--ai", action="store_true", help="enable AI narration once live")

    viewer_p = sub.add_parser("viewer", help="watch and chat")
    viewer_p.add_argument("--name", default=DEFAULT_DISPLAY_NAME, help="chat display name")

    args = parser.parse_args(argv)

    load_dotenv()
    config = AppConfig.load_from_env()

    try:
        if args.role == "admin":
            asyncio.run(run_admin(config, ai=args.ai))
        else:
            asyncio.run(run_viewer(config, name=args.name))
    except RelayConnectionError as e:
        print(f"[{args.role}] {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
