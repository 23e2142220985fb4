"""Interactive RCON shell."""

from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import os
import re
import sys

from prompt_toolkit import PromptSession

from .errors import (
    RconConnectError,
    RconConnectionLost,
    RconEncodingError,
    RconInvalidCredentials,
    RconMalformedPacket,
    RconResponseTimeout,
    RconSessionUnavailable,
)
from .session import RconSession

PASSWORD_ENV = "RCON_PASSWORD"
MAX_PASSWORD_ATTEMPTS = 3
QUIT_COMMANDS = ("/quit", "quit", "exit")
PROMPT = "λ "
SEPARATOR = "=" * 40

# Minecraft style colour/format codes, e.g. "§6" or "§l"
FORMAT_CODE = re.compile(r"§[0-9a-fk-or]", re.IGNORECASE)


def strip_formatting(text: str) -> str:
    return FORMAT_CODE.sub("", text)


def resolve_password(env: dict[str, str] | None = None) -> str:
    """Password from $RCON_PASSWORD, else ask on the terminal."""
    env = os.environ if env is None else env
    password = env.get(PASSWORD_ENV)
    if password:
        return password
    return getpass.getpass("Password: ")


async def login(session: RconSession, password: str) -> None:
    """Connect and authenticate, re-prompting on a wrong password."""
    attempts = 1
    try:
        await session.connect(password)
        return
    except RconInvalidCredentials:
        pass

    while True:
        if attempts >= MAX_PASSWORD_ATTEMPTS:
            raise RconInvalidCredentials(
                f"Authentication failed after {attempts} attempts"
            )
        print("Incorrect password. Please try again...", flush=True)
        password = await asyncio.to_thread(getpass.getpass, "Password: ")
        attempts += 1
        try:
            try:
                await session.authenticate(password)
            except (RconSessionUnavailable, RconConnectionLost):
                # server hung up after the failed attempt
                await session.connect(password)
            return
        except RconInvalidCredentials:
            continue


def _show(output: str, raw: bool) -> None:
    if not raw:
        output = strip_formatting(output)
    print(output.rstrip("\n"), flush=True)


async def run_shell(session: RconSession, *, raw: bool = False) -> int:
    """Read commands until quit/EOF and print each response."""
    prompt: PromptSession[str] = PromptSession()
    print(f"Connected to [{session.address}]. Type /quit to exit.", flush=True)
    while True:
        try:
            line = await prompt.prompt_async(PROMPT)
        except (EOFError, KeyboardInterrupt):
            return 0

        command = line.strip()
        if not command:
            continue
        if command.lower() in QUIT_COMMANDS:
            return 0

        try:
            output = await session.submit_command(command)
        except RconEncodingError as e:
            print(f"[rcon error] command rejected: {e}", flush=True)
            continue
        except RconResponseTimeout as e:
            print(f"[rcon error] {e}", flush=True)
            continue
        except (RconSessionUnavailable, RconMalformedPacket) as e:
            print(f"[rcon error] {e}", flush=True)
            return 1

        _show(output, raw)
        print(SEPARATOR, flush=True)


async def run(args: argparse.Namespace) -> int:
    password = args.password or resolve_password()
    session = RconSession(
        args.host,
        args.port,
        connect_timeout=args.timeout,
        auth_timeout=args.timeout,
        response_timeout=args.timeout,
    )
    try:
        print(f"Connecting to host at {session.address} ...", flush=True)
        try:
            await login(session, password)
        except RconConnectError as e:
            print(f"[rcon] cannot connect: {e}", flush=True)
            return 1
        except RconInvalidCredentials as e:
            print(f"[rcon] {e}", flush=True)
            return 1
        except (RconConnectionLost, RconResponseTimeout, RconMalformedPacket) as e:
            print(f"[rcon] authentication aborted: {e}", flush=True)
            return 1

        if args.command:
            try:
                _show(await session.submit_command(args.command), args.raw)
            except (
                RconEncodingError,
                RconResponseTimeout,
                RconSessionUnavailable,
                RconMalformedPacket,
            ) as e:
                print(f"[rcon error] {e}", flush=True)
                return 1
            return 0

        return await run_shell(session, raw=args.raw)
    finally:
        await session.close()


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="rcon-shell", description="An interactive RCON shell.")
    p.add_argument("-H", "--host", default="127.0.0.1", help="RCON server address")
    p.add_argument("-p", "--port", type=int, default=27015, help="RCON server port")
    p.add_argument("-c", "--command", help="run a single command and exit")
    p.add_argument(
        "--password",
        help=f"RCON password (default: ${PASSWORD_ENV} or prompt)",
    )
    p.add_argument(
        "--timeout",
        type=float,
        default=10.0,
        help="seconds to wait for connect, auth and responses",
    )
    p.add_argument("--raw", action="store_true", help="keep § formatting codes")
    p.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return p


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        return 130
