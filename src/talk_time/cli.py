import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from talk_time.config import TalkTimeConfig
from talk_time.log_format import configure_logging

ENV_FILE_PATH = Path.home() / ".config" / "talk-time" / "env"


def _load_env_file(path: Path = ENV_FILE_PATH) -> None:
    """Export KEY=VALUE lines from the user env file without overriding the shell."""
    if not path.exists():
        return
    for raw in path.read_text().splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        line = line.removeprefix("export ").strip()
        key, sep, value = line.partition("=")
        if not sep:
            continue
        os.environ.setdefault(key.strip(), value.strip().strip("'\""))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Live speaker talk-time analytics for a microphone or livestream"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    parser.add_argument("--host", help="Address to serve on")
    parser.add_argument("--port", type=int, help="Port to serve on")
    parser.add_argument("--url", help="Start transcribing a kick/youtube/twitch URL on launch")
    parser.add_argument("--mic", action="store_true", help="Start transcribing the microphone on launch")
    parser.add_argument("--device", help="Input device to capture from (see --list-devices)")
    parser.add_argument("--list-devices", action="store_true", help="List input devices and exit")
    parser.add_argument(
        "--no-transcript", action="store_true", help="Do not print the transcript to stdout"
    )

    subparsers = parser.add_subparsers(dest="command")

    start_parser = subparsers.add_parser("start", help="Start a session on a running server")
    start_parser.add_argument("target", nargs="?", help="Livestream or video URL")
    start_parser.add_argument("--mic", action="store_true", dest="start_mic", help="Use the microphone")
    start_parser.add_argument("--device", dest="start_device", help="Input device")

    subparsers.add_parser("stop", help="Stop the running session")
    subparsers.add_parser("status", help="Print the current analytics snapshot")
    subparsers.add_parser("devices", help="List input devices known to the server")
    subparsers.add_parser("watch", help="Follow the server's event feed")

    return parser


def main() -> None:
    _load_env_file()
    parser = build_parser()
    args = parser.parse_args()

    config = TalkTimeConfig()
    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port
    if args.device:
        config.capture_device = args.device
    if args.no_transcript:
        config.print_transcript = False

    configure_logging(args.verbose, config.log_file)

    if args.list_devices:
        asyncio.run(_list_devices(config))
    elif args.command in ("start", "stop", "status", "devices", "watch"):
        asyncio.run(_run_client_command(args, config))
    else:
        autostart = _autostart_request(args)
        asyncio.run(_run_server(config, autostart))


def _autostart_request(args: argparse.Namespace):
    from talk_time.domain.session import StartRequest

    if args.mic:
        return StartRequest(use_microphone=True, device_id=args.device)
    if args.url:
        return StartRequest(remote_url=args.url)
    return None


async def _list_devices(config: TalkTimeConfig) -> None:
    from talk_time.factory import create_device_lister

    lister = create_device_lister(config)
    for device in await lister.list_devices():
        print(f"{device.id}\t{device.label}")


async def _run_client_command(args: argparse.Namespace, config: TalkTimeConfig) -> None:
    import httpx

    from talk_time.adapters.http_client import ControlRequestError, TalkTimeClient

    client = TalkTimeClient(base_url=config.base_url)

    try:
        if args.command == "start":
            if not args.start_mic and not args.target:
                print("Provide a URL or --mic", file=sys.stderr)
                sys.exit(2)
            result = await client.start(url=args.target, mic=args.start_mic, device=args.start_device)
            print(f"Started ({result.get('platform')})")
        elif args.command == "stop":
            await client.stop()
            print("Stopped")
        elif args.command == "status":
            print(json.dumps(await client.status(), indent=2))
        elif args.command == "devices":
            for device in await client.devices():
                print(f"{device['id']}\t{device['label']}")
        elif args.command == "watch":
            async for message in client.watch():
                print(json.dumps(message), flush=True)
        else:
            print(f"Unknown command: {args.command}", file=sys.stderr)
            sys.exit(1)
    except httpx.ConnectError:
        print(f"talk-time is not running at {config.base_url}", file=sys.stderr)
        sys.exit(1)
    except ControlRequestError as exc:
        print(f"Request failed: {exc}", file=sys.stderr)
        sys.exit(1)


async def _run_server(config: TalkTimeConfig, autostart) -> None:
    import uvicorn

    from talk_time.adapters.http_api import ControlServer, create_app
    from talk_time.factory import create_coordinator, create_device_lister
    from talk_time.health import has_critical_failures, run_startup_checks

    results = run_startup_checks(config)
    if has_critical_failures(results):
        logging.error("Critical health check failures, aborting startup")
        sys.exit(1)

    coordinator = create_coordinator(config)
    app = create_app(
        coordinator=coordinator,
        device_lister=create_device_lister(config),
        autostart=autostart,
        print_transcript=config.print_transcript,
    )
    server = ControlServer(
        uvicorn.Config(app, host=config.host, port=config.port, log_config=None, access_log=False),
        coordinator,
    )
    logging.info("Control API: %s", config.base_url)
    await server.serve()
