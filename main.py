#!/usr/bin/env python3
"""
Grocery Dispatch

Seed demo data, inspect a driver's feed and exercise the claim race
against the local SQLite store.
"""

import argparse
import asyncio
import sys
import threading
from pathlib import Path

import uvicorn

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

import db
from db import init_database, get_table_counts
from generators import DriverGenerator, OrderGenerator, seed_reference_data
from models import FeedFilter, FeedSort
from services import DriverAvailabilityTracker, DriverSession, LocalOrderService, OrderStore
from services.errors import ClaimConflictError, DispatchError
from services.reports import export_tables, phase_summary


def generate_data(num_orders: int, seed: int = 42):
    """Generate reference data plus orders at every lifecycle stage"""

    # Scale other entities relative to orders
    num_customers = max(50, num_orders // 5)   # ~5 orders per customer avg
    num_drivers = max(20, num_orders // 25)    # ~25 orders per driver avg
    num_stores = max(6, num_orders // 100)     # ~100 orders per store avg

    print(f"\n📊 Generating data for {num_orders} orders...")
    print(f"   - {num_customers} customers")
    print(f"   - {num_drivers} drivers")
    print(f"   - {num_stores} store locations")
    print(f"   - Full product catalog\n")

    seed_reference_data(num_customers, num_drivers, num_stores, seed)

    print("📝 Replaying order history...")
    order_gen = OrderGenerator(seed)
    order_gen.generate_history(num_orders)

    print("\n✅ Data generation complete!")


def place_live_orders(count: int, seed: int = 42):
    order_gen = OrderGenerator(seed)
    plans = [order_gen.generate_one() for _ in range(count)]
    order_gen.save_to_db(plans)


def show_stats():
    """Display current database statistics"""
    counts = get_table_counts()

    print("\n📈 Database Statistics:")
    print("-" * 30)
    for table, count in counts.items():
        print(f"   {table:15} {count:>8,} rows")
    print("-" * 30)
    print(f"   {'Total':15} {sum(counts.values()):>8,} rows")
    print(f"\n   Database: {db.DATABASE_PATH}")


async def _load_feed(driver_id: str, feed_filter: FeedFilter, sort: FeedSort):
    session = DriverSession(LocalOrderService(), driver_id)
    await session.load()
    session.set_projection(feed_filter, sort)
    return session


def show_feed(driver_id: str, feed_filter: str, sort: str):
    """Print the available-order feed as a driver sees it"""
    session = asyncio.run(_load_feed(driver_id, FeedFilter(feed_filter), FeedSort(sort)))

    status = "🟢 online" if session.is_online else "⚪ offline"
    print(f"\n🚗 {session.driver_name} ({status})")
    if session.active_order:
        summary = session.active_summary()
        print(f"   Active order {summary.order_id[:8]}... {summary.status_label} "
              f"({summary.items_processed}/{summary.items_total} items, {summary.elapsed_minutes} min)")
        return
    if not session.is_online:
        print("   Go online to see available orders.")
        return

    print(f"   {len(session.feed)} available ({session.feed_filter.value}, sorted by {session.feed_sort.value})")
    print("-" * 70)
    for card in session.feed:
        print(f"   {card.order_id[:8]}  ${card.estimated_payout:>6.2f}  {card.delivery_distance:>5.1f} km  "
              f"{card.estimated_time:>3} min  {card.item_count:>2} items  {card.urgency.value:<13} "
              f"{card.store_name or ''}")


def run_claim_race(order_id: str):
    """Two drivers claim the same order at the same instant; exactly one wins"""
    tracker = DriverAvailabilityTracker()
    free = DriverGenerator(seed=None).get_free_ids()
    if len(free) < 2:
        print("❌ Need at least two drivers without an open order")
        return
    contenders = free[:2]
    for driver_id in contenders:
        tracker.set_online(driver_id, True)

    barrier = threading.Barrier(len(contenders))
    results = {}

    def attempt(driver_id: str):
        store = OrderStore()
        barrier.wait()
        try:
            store.claim_order(order_id, driver_id)
            results[driver_id] = "won"
        except ClaimConflictError as e:
            results[driver_id] = f"lost ({e})"
        except DispatchError as e:
            results[driver_id] = f"error ({e})"

    threads = [threading.Thread(target=attempt, args=(d,)) for d in contenders]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    print(f"\n🏁 Claim race for order {order_id[:8]}...")
    for driver_id, outcome in results.items():
        print(f"   {driver_id[:8]}  {outcome}")


def show_report():
    """Mean phase durations for delivered orders"""
    rows = phase_summary()
    print("\n⏱️  PHASE DURATIONS (delivered orders)")
    print("-" * 70)
    if not rows:
        print("   No delivered orders yet.")
        return
    row = rows[0]
    print(f"   Orders:            {row['orders']:>8}")
    for label, key in [("Wait for driver", "wait_minutes"), ("Shopping", "shopping_minutes"),
                       ("Delivery", "delivery_minutes"), ("Accepted→delivered", "total_minutes")]:
        value = row[key]
        print(f"   {label + ':':<19}{'n/a' if value is None else f'{value:.1f} min':>12}")

    print("\n   By village:")
    for row in phase_summary("village"):
        print(f"   {row['village']:<12} {row['orders']:>4} orders  {row['total_minutes'] or 0:>6.1f} min")


def export_to_csv():
    """Export all tables and the phase report to CSV files"""
    export_dir = Path(__file__).parent / "exports"
    print("\n📁 Exporting to CSV...")
    for name, rows in export_tables(export_dir).items():
        print(f"   - {export_dir / (name + '.csv')} ({rows} rows)")
    print("\n✅ Export complete!")


def main():
    parser = argparse.ArgumentParser(
        description="Grocery dispatch demo data and driver tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                        # Generate 200 historical orders (default)
  python main.py --reset --orders 1000  # Reset DB and generate fresh
  python main.py --live 10              # Place 10 pending orders for drivers
  python main.py --feed DRIVER_ID --filter nearby --sort payout
  python main.py --race ORDER_ID        # Two drivers claim one order at once
  python main.py --report               # Phase-duration report
  python main.py --export               # Export tables to CSV
  python main.py --stats                # Show database statistics
  python main.py --serve --port 8000   # Run the dispatch API
        """
    )

    parser.add_argument(
        "--orders", "-n",
        type=int,
        default=200,
        help="Number of historical orders to generate (default: 200)"
    )

    parser.add_argument(
        "--live",
        type=int,
        metavar="N",
        help="Place N pending orders on the live feed"
    )

    parser.add_argument(
        "--reset", "-r",
        action="store_true",
        help="Reset database before generating"
    )

    parser.add_argument(
        "--seed", "-s",
        type=int,
        default=42,
        help="Random seed for reproducibility (default: 42)"
    )

    parser.add_argument(
        "--stats",
        action="store_true",
        help="Show database statistics"
    )

    parser.add_argument(
        "--feed",
        metavar="DRIVER_ID",
        help="Show the available-order feed for a driver"
    )

    parser.add_argument(
        "--filter",
        choices=[f.value for f in FeedFilter],
        default=FeedFilter.ALL.value,
        help="Feed filter (default: all)"
    )

    parser.add_argument(
        "--sort",
        choices=[s.value for s in FeedSort],
        default=FeedSort.OLDEST.value,
        help="Feed sort (default: oldest)"
    )

    parser.add_argument(
        "--race",
        metavar="ORDER_ID",
        help="Run a two-driver claim race on a pending order"
    )

    parser.add_argument(
        "--report",
        action="store_true",
        help="Show phase durations for delivered orders"
    )

    parser.add_argument(
        "--export", "-e",
        action="store_true",
        help="Export all tables to CSV files"
    )

    parser.add_argument(
        "--serve",
        action="store_true",
        help="Run the dispatch API with uvicorn"
    )

    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port for --serve (default: 8000)"
    )

    args = parser.parse_args()

    # Initialize database
    init_database(reset=args.reset)

    if args.serve:
        uvicorn.run("api.main:app", host="0.0.0.0", port=args.port)
        return

    if args.stats:
        show_stats()
        return

    if args.feed:
        show_feed(args.feed, args.filter, args.sort)
        return

    if args.race:
        run_claim_race(args.race)
        return

    if args.report:
        show_report()
        return

    if args.export:
        export_to_csv()
        return

    if args.live:
        seed_reference_data(seed=args.seed)
        place_live_orders(args.live, seed=args.seed)
        show_stats()
        return

    generate_data(num_orders=args.orders, seed=args.seed)
    show_stats()


if __name__ == "__main__":
    main()
