"""Interactive CLI — request recovery codes against the mock backend."""

import asyncio

from recovery_service.config import settings
from recovery_service.database.engine import init_db
from recovery_service.dependencies import build_coordinator
from recovery_service.mock_external_api.router import outbox

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
BOLD = "\033[1m"
RESET = "\033[0m"


async def main() -> None:
    print(f"\n{BOLD}{'=' * 52}")
    print("  🔑  Credential Recovery — Simulator")
    print(f"{'=' * 52}{RESET}\n")

    # ── Initialise database (powers the mock backend) ────
    await init_db()

    print(f"{DIM}Tip: run seed.py first; try card 12345678901 (has e-mail and mobile){RESET}")
    print(f"{DIM}     Enter '<card> <email|sms|whatsapp>', 'purge', 'inspect' or 'quit'{RESET}\n")

    # ── Start the mock backend in the background ─────────
    # The coordinator talks to it over HTTP, like the real legacy backend.
    import uvicorn

    settings.mock_backend_enabled = True
    from recovery_service.main import app

    config = uvicorn.Config(app, host="127.0.0.1", port=8000, log_level="warning")
    server = uvicorn.Server(config)
    server_task = asyncio.create_task(server.serve())

    # Give the server a moment to start
    await asyncio.sleep(0.5)

    coordinator = build_coordinator(settings)

    while True:
        try:
            user_input = input(f"{BLUE}{BOLD}>{RESET} ").strip()
        except (KeyboardInterrupt, EOFError):
            print(f"\n{DIM}Goodbye!{RESET}")
            break

        if not user_input:
            continue

        command = user_input.lower()
        if command == "quit":
            print(f"{DIM}Goodbye!{RESET}")
            break

        if command == "purge":
            report = await coordinator.purge_expired()
            print(f"{YELLOW}Purged {report.count} expired code(s){RESET}\n")
            continue

        if command == "inspect":
            for info in await coordinator.inspect():
                print(f"{DIM}{info.key}: {info.state}, {info.expires_in_seconds}s left{RESET}")
            print()
            continue

        parts = user_input.split()
        if len(parts) != 2:
            print(f"{RED}Usage: <card> <email|sms|whatsapp>{RESET}\n")
            continue

        card, channel = parts
        result = await coordinator.request_code(card, channel)
        colour = GREEN if result.success else RED
        print(f"{colour}{BOLD}Result:{RESET} {result.to_wire()}")

        latest = outbox.latest("".join(ch for ch in card if ch.isdigit()))
        if result.success and latest is not None:
            print(f"{DIM}Mock outbox → {latest.destination}: code {latest.code}{RESET}")
        print()

    # Shut down the background server
    await coordinator.wait_idle()
    server.should_exit = True
    await server_task


if __name__ == "__main__":
    asyncio.run(main())
