#!/usr/bin/env python3
"""
Elasticsearch ASG agents - Main entry point.

Runs one agent (drainer, throttler, cloudwatcher or snapshooter) alongside
an HTTP server for health checks and Prometheus metrics.
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import threading
from http.server import ThreadingHTTPServer
from typing import Dict, List, Optional, Sequence

from prometheus_client import CollectorRegistry

from ..clients.aws import AWSClients
from ..clients.elasticsearch import ElasticsearchClient
from ..concurrency import CancelToken
from ..errors import AgentError, ConfigError, FatalError
from .config import Config
from .routes import HealthRequestHandler

logger = logging.getLogger(__name__)

AGENTS = ("drainer", "throttler", "cloudwatcher", "snapshooter")

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_CONFIG = 2

SHUTDOWN_GRACE = 10  # seconds to wait for workers after cancellation


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Apply command line flags on top of the loaded configuration."""
    if args.log_level:
        config.log_level = args.log_level
    if args.es_url:
        config.elasticsearch.urls = list(args.es_url)
    if args.insecure:
        config.elasticsearch.verify = False
    if args.ca_bundle:
        config.elasticsearch.ca_bundle = args.ca_bundle
    if args.region:
        config.aws.region = args.region
    if args.profile:
        config.aws.profile = args.profile
    if args.max_retries is not None:
        config.aws.max_retries = args.max_retries
    if args.host:
        config.server.host = args.host
    if args.port is not None:
        config.server.port = args.port

    if args.agent == "drainer":
        if args.queue_url:
            config.drainer.queue_url = args.queue_url
        if args.poll_interval is not None:
            config.drainer.poll_interval = args.poll_interval
        if args.max_workers is not None:
            config.drainer.max_workers = args.max_workers
    elif args.agent == "throttler":
        if args.group:
            config.throttler.groups = list(args.group)
        if args.interval is not None:
            config.throttler.interval = args.interval
        if args.dry_run:
            config.throttler.dry_run = True
        if args.ecs_cluster:
            config.throttler.ecs_cluster = args.ecs_cluster
        if args.ecs_service:
            config.throttler.ecs_services = list(args.ecs_service)
    elif args.agent == "cloudwatcher":
        if args.interval is not None:
            config.cloudwatcher.interval = args.interval
        if args.namespace:
            config.cloudwatcher.namespace = args.namespace
    elif args.agent == "snapshooter":
        s = config.snapshooter
        for bucket in ("hourly", "daily", "weekly", "monthly", "yearly"):
            value = getattr(args, bucket)
            if value is not None:
                setattr(s, bucket, value)
        if args.repo_name:
            s.repository.name = args.repo_name
        if args.repo_type is not None:
            s.repository.type = args.repo_type
        if args.repo_settings:
            s.repository.settings = parse_repo_settings(args.repo_settings)
        if args.delete:
            s.delete = True
        if args.dry_run:
            s.dry_run = True
    return config


def parse_repo_settings(values: Sequence[str]) -> Dict[str, str]:
    settings = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise ConfigError(f"repository setting must be key=value, got {item!r}")
        settings[key] = value
    return settings


def build_app(config: Config, registry: CollectorRegistry, agent: str):
    """Construct the agent named ``agent``."""
    es = ElasticsearchClient(
        config.elasticsearch.urls,
        timeout=config.elasticsearch.timeout,
        retries=config.elasticsearch.retries,
        verify=config.elasticsearch.verify,
        ca_bundle=config.elasticsearch.ca_bundle,
    )

    if agent == "snapshooter":
        from ..snapshooter import SnapshooterApp

        return SnapshooterApp(config, es, registry=registry)

    aws = AWSClients(config.aws.region, config.aws.profile, max_retries=config.aws.max_retries)
    if agent == "drainer":
        from ..drainer import DrainerApp

        return DrainerApp(config, es, aws, registry)
    if agent == "throttler":
        from ..throttler import ThrottlerApp

        return ThrottlerApp(config, es, aws, registry)
    if agent == "cloudwatcher":
        from ..cloudwatcher import CloudwatcherApp

        return CloudwatcherApp(config, es, aws, registry)
    raise ConfigError(f"unknown agent: {agent}")


def install_signal_handlers(token: CancelToken) -> None:
    def handler(signum, frame):
        name = signal.Signals(signum).name
        logger.info(f"[main] received {name}, shutting down")
        token.cancel(name)

    signal.signal(signal.SIGTERM, handler)
    signal.signal(signal.SIGINT, handler)


def run(args: argparse.Namespace) -> int:
    logging.basicConfig(
        level=(args.log_level or "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    try:
        config = apply_overrides(Config.load(args.config), args)
        logging.getLogger().setLevel(config.log_level.upper())
        registry = CollectorRegistry()
        app = build_app(config, registry, args.agent)
    except ConfigError as exc:
        logger.error(f"[main] configuration error: {exc}")
        return EXIT_CONFIG
    except FatalError as exc:
        logger.error(f"[main] {exc}")
        return EXIT_FATAL
    except AgentError as exc:
        logger.error(f"[main] {args.agent} setup failed: {exc}")
        return EXIT_FATAL

    if args.print_config:
        print(json.dumps(config.to_dict(), indent=2))
        return EXIT_OK

    token = CancelToken()
    install_signal_handlers(token)
    workers: List[threading.Thread] = app.workers(token)

    # Configure the request handler
    HealthRequestHandler.registry = registry
    HealthRequestHandler.checks = {w.name: w.is_ready for w in workers}
    HealthRequestHandler.live_path = config.server.live_path
    HealthRequestHandler.ready_path = config.server.ready_path
    HealthRequestHandler.metrics_path = config.server.metrics_path

    server = ThreadingHTTPServer((config.server.host, config.server.port), HealthRequestHandler)
    server_thread = threading.Thread(target=server.serve_forever, name="health-server", daemon=True)
    server_thread.start()
    logger.info(f"[main] {args.agent}: serving health on http://{config.server.host}:{config.server.port}")

    for worker in workers:
        worker.start()

    try:
        while not token.wait(1.0):
            failed = [w for w in workers if getattr(w, "error", None) is not None]
            if failed:
                token.cancel(f"{failed[0].name} failed")
                break
            if not any(w.is_alive() for w in workers):
                token.cancel("all workers stopped")
                break
    finally:
        token.cancel("shutdown")
        for worker in workers:
            worker.join(timeout=SHUTDOWN_GRACE)
        server.shutdown()
        server.server_close()

    errors = [w.error for w in workers if getattr(w, "error", None) is not None]
    if errors:
        logger.error(f"[main] {args.agent} stopped with error: {errors[0]}")
        return EXIT_FATAL
    logger.info(f"[main] {args.agent} stopped")
    return EXIT_OK


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Operate an Elasticsearch cluster on an auto scaling group",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    # Global options; unset flags leave the configuration untouched
    parser.add_argument("--config", type=str, help="Path to config YAML file")
    parser.add_argument(
        "--log-level",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Logging level",
    )
    parser.add_argument("--print-config", action="store_true", help="Print the effective configuration and exit")
    parser.add_argument(
        "--es-url",
        action="append",
        help="Elasticsearch URL (repeatable)",
    )
    parser.add_argument("--insecure", action="store_true", help="Skip TLS verification for Elasticsearch")
    parser.add_argument("--ca-bundle", type=str, help="Path to a custom CA bundle")
    parser.add_argument("--region", help="AWS region")
    parser.add_argument("--profile", help="AWS profile")
    parser.add_argument("--max-retries", type=int, help="Maximum attempts per AWS API call")
    parser.add_argument("--host", help="Health server bind address")
    parser.add_argument("--port", type=int, help="Health server port")

    sub = parser.add_subparsers(dest="agent", required=True, metavar="AGENT")

    drainer = sub.add_parser("drainer", help="Drain shards from nodes that are about to terminate")
    drainer.add_argument("--queue-url", help="SQS queue receiving termination and spot events")
    drainer.add_argument("--poll-interval", type=float, help="Seconds between shard checks")
    drainer.add_argument("--max-workers", type=int, help="Messages handled concurrently")

    throttler = sub.add_parser("throttler", help="Pause auto scaling while the cluster is unstable")
    throttler.add_argument("--group", action="append", help="Auto scaling group name (repeatable)")
    throttler.add_argument("--interval", type=float, help="Seconds between checks")
    throttler.add_argument("--dry-run", action="store_true", help="Log decisions without changing groups")
    throttler.add_argument("--ecs-cluster", help="ECS cluster whose services gate scaling")
    throttler.add_argument("--ecs-service", action="append", help="ECS service name (repeatable)")

    cloudwatcher = sub.add_parser("cloudwatcher", help="Push aggregated node stats to CloudWatch")
    cloudwatcher.add_argument("--interval", type=float, help="Seconds between pushes")
    cloudwatcher.add_argument("--namespace", help="CloudWatch metric namespace")

    snapshooter = sub.add_parser("snapshooter", help="Take snapshots and prune them on a retention schedule")
    for bucket in ("hourly", "daily", "weekly", "monthly", "yearly"):
        snapshooter.add_argument(f"--{bucket}", type=int, help=f"Number of {bucket} snapshots to keep")
    snapshooter.add_argument("--repo-name", help="Snapshot repository name")
    snapshooter.add_argument("--repo-type", help="Snapshot repository type; empty skips creating it")
    snapshooter.add_argument(
        "--repo-settings",
        action="append",
        metavar="KEY=VALUE",
        help="Snapshot repository setting (repeatable)",
    )
    snapshooter.add_argument("--delete", action="store_true", help="Delete snapshots retention does not keep")
    snapshooter.add_argument("--dry-run", action="store_true", help="List snapshots but change nothing")

    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None):
    """Entry point for the esasg command."""
    sys.exit(run(parse_args(argv)))


if __name__ == "__main__":
    main()
