# stallbid/main.py
import argparse
import asyncio
import sys
from contextlib import asynccontextmanager
from typing import List

from loguru import logger

from stallbid.core.config import settings
from stallbid.core.exceptions import StallBidError
from stallbid.core.session import SessionContext, SessionStore
from stallbid.enums import StallStatus
from stallbid.schemas.bid import BidRecord
from stallbid.schemas.view_state import ViewState
from stallbid.services import (
    ApiClient, AuthService, BidService, BidUpdateChannel, LiveBiddingSession,
    SnapshotFetcher, StallService,
)


class Client:
    """Wires the session, the HTTP client and the services together"""

    def __init__(self, session: SessionContext, api: ApiClient):
        self.session = session
        self.api = api
        self.stalls = StallService(api)
        self.bids = BidService(api)
        self.auth = AuthService(api, session)

    def live_session(self, stall_id: int) -> LiveBiddingSession:
        return LiveBiddingSession(stall_id, SnapshotFetcher(self.stalls, self.bids), self.bids, self.session)


@asynccontextmanager
async def open_client():
    session = SessionContext(SessionStore(settings.session_db))
    await session.load()
    async with ApiClient(session=session) as api:
        yield Client(session, api)


def setup_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


def render_state(state: ViewState, new_bids: List[BidRecord]) -> str:
    symbol = settings.currency_symbol
    stall = state.snapshot
    if stall is None:
        return f"[{state.phase.value}] stall {state.stall_id}: loading..."

    lines = [
        f"[{state.phase.value}] #{stall.stall_no or stall.stall_id} {stall.stall_name} ({stall.status.value})",
        f"  highest: {symbol}{stall.current_highest_bid or 0}  bids: {stall.total_bids}"
        f"  next minimum: {symbol}{state.min_bid_amount}",
    ]
    if state.countdown:
        lines.append(f"  {state.countdown.label}: {state.countdown.display}")
    for bid in new_bids:
        lines.append(f"  + {bid.bidder_name} bid {symbol}{bid.amount}")
    return "\n".join(lines)


async def cmd_login(client: Client, args) -> int:
    response = await client.auth.login(args.email, args.password)
    print(response.message or ("Logged in" if response.success else "Login failed"))
    return 0 if response.success else 1


async def cmd_verify_otp(client: Client, args) -> int:
    response = await client.auth.verify_otp(args.email, args.otp)
    print(response.message or ("Verified" if response.success else "Verification failed"))
    return 0 if response.success else 1


async def cmd_logout(client: Client, args) -> int:
    await client.auth.logout()
    return 0


async def cmd_whoami(client: Client, args) -> int:
    if not client.session.is_logged_in:
        print("Not logged in")
        return 1
    user = await client.auth.get_current_user()
    print(f"{user.student_name} <{user.student_email}> role={user.role.value}")
    return 0


async def cmd_stalls(client: Client, args) -> int:
    if args.status:
        stalls = await client.stalls.get_stalls_by_status(StallStatus(args.status.upper()))
    else:
        stalls = await client.stalls.get_all_stalls()
    for stall in stalls:
        price = stall.current_highest_bid or stall.base_price
        print(f"{stall.stall_id:>5}  #{stall.stall_no or '-':<5} {stall.stall_name:<30} "
              f"{stall.status.value:<10} {settings.currency_symbol}{price}")
    return 0


async def cmd_watch(client: Client, args) -> int:
    live = client.live_session(args.stall_id)
    live.subscribe(lambda state, new_bids: print(render_state(state, new_bids), flush=True))

    channel = None
    if args.push:
        channel = BidUpdateChannel(args.stall_id, live.on_push, session=client.session)
        channel.start()
    try:
        await live.start()
        while not live.state.is_auction_ended:
            await asyncio.sleep(1)
        print("Auction ended")
    finally:
        if channel:
            await channel.stop()
        await live.stop()
    return 0


async def cmd_bid(client: Client, args) -> int:
    live = client.live_session(args.stall_id)
    try:
        await live.refresh()
        try:
            await live.place_bid(args.amount)
        except StallBidError as e:
            print(live.bid_error or e.message)
            return 1
        print(live.bid_success)
        print(render_state(live.state, []))
    finally:
        await live.stop()
    return 0


COMMANDS = {
    "login": cmd_login,
    "verify-otp": cmd_verify_otp,
    "logout": cmd_logout,
    "whoami": cmd_whoami,
    "stalls": cmd_stalls,
    "watch": cmd_watch,
    "bid": cmd_bid,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="stallbid", description=settings.app_name)
    parser.add_argument("--log-level", default=settings.log_level)
    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login")
    login.add_argument("email")
    login.add_argument("password")

    otp = sub.add_parser("verify-otp")
    otp.add_argument("email")
    otp.add_argument("otp")

    sub.add_parser("logout")
    sub.add_parser("whoami")

    stalls = sub.add_parser("stalls")
    stalls.add_argument("--status", choices=[s.value.lower() for s in StallStatus if s != StallStatus.unknown])

    watch = sub.add_parser("watch")
    watch.add_argument("stall_id", type=int)
    watch.add_argument("--push", action="store_true", help="also listen for pushed bid updates")

    bid = sub.add_parser("bid")
    bid.add_argument("stall_id", type=int)
    bid.add_argument("amount")
    return parser


async def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)
    async with open_client() as client:
        try:
            return await COMMANDS[args.command](client, args)
        except StallBidError as e:
            logger.error(e.message)
            return 1


def run():
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    run()
