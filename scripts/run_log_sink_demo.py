#!/usr/bin/env python3
"""
Log Sink Demo - Manual end-to-end check against a real bot.

============================================================
USAGE
============================================================
    python scripts/run_log_sink_demo.py
    python scripts/run_log_sink_demo.py --bulk 400
    python scripts/run_log_sink_demo.py --exclude DEBUG --exclude FLOODWAIT

Reads TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID (and the other
TGLOG_* settings) from the environment or a .env file.

============================================================
WHAT TO EXPECT
============================================================
- One message that grows as the demo lines arrive
- No lines containing an excluded pattern
- A log file attachment once the bulk burst exceeds the
  pending size

============================================================
"""

import argparse
import logging
import sys
import time
from datetime import datetime
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent.absolute()
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from dotenv import load_dotenv

from telegram_log_sink import (
    LogSinkError,
    SinkConfig,
    attach_to_logger,
    initialize_sink,
)

logger = logging.getLogger("demo")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Forward demo logs to Telegram")
    parser.add_argument("--bulk", type=int, default=400, help="Lines in the bulk burst")
    parser.add_argument(
        "--exclude",
        action="append",
        default=None,
        help="Excluded substring (repeatable)",
    )
    parser.add_argument("--log-file", default="bot.log", help="Local mirror file")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    load_dotenv()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        config = SinkConfig.from_env(
            excluded_patterns=args.exclude or ["DEBUG", "FLOODWAIT"],
            log_file_path=args.log_file,
            idle_flush=True,
        )
        sink = initialize_sink(config)
    except LogSinkError as e:
        print(f"❌ Could not start the log sink: {e.message}")
        return 1

    attach_to_logger(sink, logger)
    logger.propagate = False

    with sink:
        logger.info("Testing if this thing actually runs")
        time.sleep(0.5)

        # Dropped by the default excluded patterns
        logger.info("DEBUG: This won't appear in tg")
        logger.info("FLOODWAIT: This is also ignored")
        time.sleep(0.5)

        logger.info("📈 Something happened here")
        logger.info("👤 New user started the bot: user123")
        time.sleep(0.5)

        logger.error("❌ ERROR: simulated failure")
        logger.warning("🔄 Errors everywhere")
        logger.info("✅ Error resolved")
        time.sleep(0.5)

        logger.info("📊 Generating bulk logs for file upload test...")
        for i in range(args.bulk):
            logger.info(f"Bulk log entry #{i} - {datetime.now():%Y-%m-%d %H:%M:%S}")
            if i % 20 == 0:
                time.sleep(0.1)

        logger.info("🏁 Demo completed")
        time.sleep(5)

        print(f"📋 Stats: {sink.stats.to_dict()}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
