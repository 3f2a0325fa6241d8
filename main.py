"""
CLI entry point for chatcache.

Usage:
    python main.py demo --policy fifo --max-items 2
    python main.py demo --policy priority --audit
    python main.py config
"""

import argparse
import json
import logging
import sys
from dataclasses import asdict

from chatcache.cache import CacheRegistry, ItemOptions
from chatcache.config import DictConfigProvider, get_settings


def _configure_logging():
    """Apply the configured log level to the root logger."""
    level = get_settings().logging.level.upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def cmd_demo(args):
    """Run a scripted sequence against one cache and print the stats."""
    policy = args.policy or get_settings().cache.eviction_policy
    provider = DictConfigProvider({"cache.eviction_policy": policy})

    with CacheRegistry(
        defaults={
            "max_items": args.max_items,
            "ttl_seconds": args.ttl,
            "check_interval_seconds": 0,
            "enable_logging": args.audit,
        },
        config=provider,
    ) as registry:
        cache = registry.create_cache("demo")
        print(f"Running demo (policy={policy}, max_items={args.max_items})\n")

        for i, key in enumerate(["alpha", "beta", "gamma", "delta"]):
            cache.set(key, {"message": f"payload-{key}"}, ItemOptions(priority=i % 2))
            print(f"  set {key:<6} -> keys={sorted(cache.keys())}")
            if key == "beta":
                cache.get("alpha")
                print("  get alpha")

        cache.get("missing")
        print("\n--- Stats ---")
        print(registry.get_global_stats().model_dump_json(indent=2))

        if args.audit:
            print("\n--- Audit trail ---")
            print(registry.audit.export("demo").decode("utf-8"))


def cmd_config(args):
    """Print the effective settings."""
    print(json.dumps(asdict(get_settings()), indent=2))


def main():
    parser = argparse.ArgumentParser(
        description="chatcache - named in-process caches"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # demo
    p_demo = subparsers.add_parser("demo", help="Run a scripted cache demo")
    p_demo.add_argument(
        "--policy",
        choices=["lru", "lfu", "fifo", "priority"],
        default=None,
        help="Eviction policy (defaults to configured value)",
    )
    p_demo.add_argument("--max-items", type=int, default=2)
    p_demo.add_argument("--ttl", type=float, default=300.0)
    p_demo.add_argument("--audit", action="store_true", help="Print audit trail")

    # config
    subparsers.add_parser("config", help="Show effective settings")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    _configure_logging()

    commands = {
        "demo": cmd_demo,
        "config": cmd_config,
    }
    commands[args.command](args)


if __name__ == "__main__":
    main()
