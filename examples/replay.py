#!/usr/bin/env python3
"""
Replay a recorded simulation event log through the dashboard and print
what the arrivals board and dispatcher panel would show.

The log is JSON lines, one event per line, each with an "action" key and a
"t" key holding milliseconds since the start of the recording:

    {"t": 0, "action": "updateArrivals", "arrivals": [{"trainId": "T1", "destination": "Downtown", "eta": 200}]}
    {"t": 2000, "action": "updateArrivals", "arrivals": [{"trainId": "T1", "destination": "Downtown", "eta": 185}]}
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Add src to path so we can import transitboard
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from transitboard.clock import ManualClock
from transitboard.commands import RecordingCommandClient
from transitboard.dashboard import Dashboard

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def print_board(dashboard: Dashboard, t: float):
    """Print the arrivals board as text."""
    board = dashboard.board
    print(f"\n{'='*70}")
    print(f"t={t / 1000:.1f}s  {board.station_name or 'ARRIVALS'}")
    print(f"{'='*70}")

    if board.signal_hold:
        print(f"[{board.signal_hold.title}] {board.signal_hold.segment_name}: {board.signal_hold.reason}")

    if board.rows:
        for row in board.rows:
            signal = f"  [{row.signal.signal_state}]" if row.signal else ""
            print(f"  {row.destination:24s} {row.type_label:9s} {row.eta_text:>8s}  {row.status_text}{signal}")
    elif board.empty_state:
        print(f"  {board.empty_state.title}")
        print(f"  {board.empty_state.subtitle}")


def print_dispatcher(dashboard: Dashboard):
    """Print the dispatcher panel as text."""
    panel = dashboard.dispatcher
    if not panel.segment_views:
        return

    print("\nSEGMENTS:")
    print("-" * 70)
    for view in panel.segment_views.values():
        marker = ">" if view.selected else " "
        pending = f" ({view.pending_action} pending)" if view.pending_action else ""
        print(f" {marker} {view.name:20s} {view.block_class:10s}{' caution' if view.caution else ''}{pending}")

    print("\nTRAINS:")
    print("-" * 70)
    for item in panel.train_items:
        marker = ">" if item.active else " "
        print(f" {marker} {item.train_id:8s} {item.type_label} {item.location:16s} {item.status_text:10s} [{item.button_label}]")


def replay(path: Path, show_every: bool = False):
    """
    Feed every event in a recording to a dashboard on a manual clock.

    Args:
        path: JSON-lines event log.
        show_every: Print the board after every event instead of only at the end.
    """
    clock = ManualClock()
    commands = RecordingCommandClient()
    dashboard = Dashboard(clock=clock, commands=commands)
    dashboard.start_status_ticks()

    with open(path, "r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                event = json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning(f"Skipping line {line_no}: {e}")
                continue

            t = float(event.pop("t", clock.now_ms()))
            if t > clock.now_ms():
                dashboard.timers.advance(t - clock.now_ms())
            dashboard.handle(event)

            if show_every:
                print_board(dashboard, clock.now_ms())

    # Let any deferred render fire
    dashboard.timers.advance(dashboard.settings.throttle_ms)

    print_board(dashboard, clock.now_ms())
    print_dispatcher(dashboard)

    if commands.sent:
        print("\nCOMMANDS SENT:")
        print("-" * 70)
        for command, payload in commands.sent:
            print(f"  {command} {json.dumps(payload)}")
    print()


def main():
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("log", type=Path, help="JSON-lines event recording")
    parser.add_argument("--every", action="store_true", help="print the board after every event")
    args = parser.parse_args()

    try:
        replay(args.log, show_every=args.every)
    except FileNotFoundError as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
