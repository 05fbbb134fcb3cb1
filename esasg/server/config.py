"""Configuration management for the agents.

Supports YAML-based configuration; command-line flags override it.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..clients.elasticsearch import DEFAULT_URL
from ..errors import ConfigError


@dataclass
class ElasticsearchConfig:
    urls: List[str] = field(default_factory=lambda: [DEFAULT_URL])
    timeout: float = 30  # seconds
    retries: int = 3
    verify: bool = True
    ca_bundle: Optional[str] = None


@dataclass
class AWSConfig:
    region: Optional[str] = None
    profile: Optional[str] = None
    max_retries: int = 5


@dataclass
class ServerConfig:
    """Health and metrics endpoint configuration."""

    host: str = "0.0.0.0"
    port: int = 8080
    live_path: str = "/livez"
    ready_path: str = "/readyz"
    metrics_path: str = "/metrics"


@dataclass
class DrainerConfig:
    queue_url: Optional[str] = None
    poll_interval: float = 10  # seconds between shard checks
    prune_interval: float = 60  # seconds between departed-node sweeps
    max_heartbeat_interval: float = 60  # must stay below visibility_timeout
    visibility_timeout: int = 300
    max_workers: int = 10


@dataclass
class ThrottlerConfig:
    groups: List[str] = field(default_factory=list)
    interval: float = 60
    dry_run: bool = False
    scaling_processes: List[str] = field(default_factory=lambda: ["AlarmNotification"])
    ecs_cluster: Optional[str] = None
    ecs_services: List[str] = field(default_factory=list)


@dataclass
class CloudwatcherConfig:
    interval: float = 60
    namespace: str = "Elasticsearch"


@dataclass
class RepositoryConfig:
    name: str = "backups"
    type: str = "s3"
    settings: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SnapshooterConfig:
    repository: RepositoryConfig = field(default_factory=RepositoryConfig)
    hourly: int = 0
    daily: int = 0
    weekly: int = 0
    monthly: int = 0
    yearly: int = 0
    delete: bool = False
    dry_run: bool = False
    snapshot_timeout: float = 3600


@dataclass
class Config:
    """Main configuration container."""

    elasticsearch: ElasticsearchConfig = field(default_factory=ElasticsearchConfig)
    aws: AWSConfig = field(default_factory=AWSConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    log_level: str = "INFO"

    drainer: DrainerConfig = field(default_factory=DrainerConfig)
    throttler: ThrottlerConfig = field(default_factory=ThrottlerConfig)
    cloudwatcher: CloudwatcherConfig = field(default_factory=CloudwatcherConfig)
    snapshooter: SnapshooterConfig = field(default_factory=SnapshooterConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create config from dictionary."""
        es_data = data.get("elasticsearch", {})
        urls = es_data.get("urls", es_data.get("url", [DEFAULT_URL]))
        elasticsearch = ElasticsearchConfig(
            urls=[urls] if isinstance(urls, str) else list(urls),
            timeout=es_data.get("timeout", 30),
            retries=es_data.get("retries", 3),
            verify=es_data.get("verify", True),
            ca_bundle=es_data.get("ca_bundle"),
        )

        aws_data = data.get("aws", {})
        aws = AWSConfig(
            region=aws_data.get("region"),
            profile=aws_data.get("profile"),
            max_retries=aws_data.get("max_retries", 5),
        )

        server_data = data.get("server", {})
        server = ServerConfig(
            host=server_data.get("host", "0.0.0.0"),
            port=server_data.get("port", 8080),
            live_path=server_data.get("live_path", "/livez"),
            ready_path=server_data.get("ready_path", "/readyz"),
            metrics_path=server_data.get("metrics_path", "/metrics"),
        )

        dr_data = data.get("drainer", {})
        drainer = DrainerConfig(
            queue_url=dr_data.get("queue_url"),
            poll_interval=dr_data.get("poll_interval", 10),
            prune_interval=dr_data.get("prune_interval", 60),
            max_heartbeat_interval=dr_data.get("max_heartbeat_interval", 60),
            visibility_timeout=dr_data.get("visibility_timeout", 300),
            max_workers=dr_data.get("max_workers", 10),
        )

        th_data = data.get("throttler", {})
        ecs_data = th_data.get("ecs", {})
        throttler = ThrottlerConfig(
            groups=list(th_data.get("groups", [])),
            interval=th_data.get("interval", 60),
            dry_run=th_data.get("dry_run", False),
            scaling_processes=list(th_data.get("scaling_processes", ["AlarmNotification"])),
            ecs_cluster=ecs_data.get("cluster"),
            ecs_services=list(ecs_data.get("services", [])),
        )

        cw_data = data.get("cloudwatcher", {})
        cloudwatcher = CloudwatcherConfig(
            interval=cw_data.get("interval", 60),
            namespace=cw_data.get("namespace", "Elasticsearch"),
        )

        sn_data = data.get("snapshooter", {})
        repo_data = sn_data.get("repository", {})
        retention = sn_data.get("retention", {})
        snapshooter = SnapshooterConfig(
            repository=RepositoryConfig(
                name=repo_data.get("name", "backups"),
                type=repo_data.get("type", "s3"),
                settings=dict(repo_data.get("settings", {})),
            ),
            hourly=retention.get("hourly", 0),
            daily=retention.get("daily", 0),
            weekly=retention.get("weekly", 0),
            monthly=retention.get("monthly", 0),
            yearly=retention.get("yearly", 0),
            delete=sn_data.get("delete", False),
            dry_run=sn_data.get("dry_run", False),
            snapshot_timeout=sn_data.get("snapshot_timeout", 3600),
        )

        return cls(
            elasticsearch=elasticsearch,
            aws=aws,
            server=server,
            log_level=data.get("logging", {}).get("level", "INFO"),
            drainer=drainer,
            throttler=throttler,
            cloudwatcher=cloudwatcher,
            snapshooter=snapshooter,
        )

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        """Load config from YAML file."""
        if not path.exists():
            return cls()
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ConfigError(f"invalid YAML in {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"{path}: top level must be a mapping")
        return cls.from_dict(data)

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "Config":
        """Load config from path or defaults.

        Checks in order:
        1. Provided path
        2. ESASG_CONFIG env var
        3. ./configs/config.yaml
        4. ./config.yaml
        5. ~/.esasg/config.yaml
        6. Default config
        """
        if config_path and not Path(config_path).exists():
            raise ConfigError(f"config file not found: {config_path}")

        paths_to_try = []

        if config_path:
            paths_to_try.append(Path(config_path))

        if env_path := os.environ.get("ESASG_CONFIG"):
            paths_to_try.append(Path(env_path))

        paths_to_try.extend([
            Path("./configs/config.yaml"),
            Path("./config.yaml"),
            Path.home() / ".esasg" / "config.yaml",
        ])

        for path in paths_to_try:
            if path.exists():
                return cls.from_yaml(path)

        return cls()

    def validate(self, agent: str) -> None:
        """Check the settings ``agent`` needs.

        Raises:
            ConfigError: If a required value is missing or inconsistent.
        """
        if agent == "drainer":
            if not self.drainer.queue_url:
                raise ConfigError("drainer requires a queue URL")
            if self.drainer.max_heartbeat_interval >= self.drainer.visibility_timeout:
                raise ConfigError("drainer heartbeat interval must be shorter than the queue visibility timeout")
        elif agent == "throttler":
            if not self.throttler.groups:
                raise ConfigError("throttler requires at least one auto scaling group")
            if self.throttler.ecs_services and not self.throttler.ecs_cluster:
                raise ConfigError("throttler ECS services require an ECS cluster")
        elif agent == "snapshooter":
            s = self.snapshooter
            if not any((s.hourly, s.daily, s.weekly, s.monthly, s.yearly)):
                raise ConfigError("snapshooter requires at least one retention bucket")
            if min(s.hourly, s.daily, s.weekly, s.monthly, s.yearly) < 0:
                raise ConfigError("snapshooter retention counts must not be negative")

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "elasticsearch": {
                "urls": list(self.elasticsearch.urls),
                "timeout": self.elasticsearch.timeout,
                "retries": self.elasticsearch.retries,
                "verify": self.elasticsearch.verify,
                "ca_bundle": self.elasticsearch.ca_bundle,
            },
            "aws": {
                "region": self.aws.region,
                "profile": self.aws.profile,
                "max_retries": self.aws.max_retries,
            },
            "server": {
                "host": self.server.host,
                "port": self.server.port,
                "live_path": self.server.live_path,
                "ready_path": self.server.ready_path,
                "metrics_path": self.server.metrics_path,
            },
            "logging": {"level": self.log_level},
            "drainer": {
                "queue_url": self.drainer.queue_url,
                "poll_interval": self.drainer.poll_interval,
                "prune_interval": self.drainer.prune_interval,
                "max_heartbeat_interval": self.drainer.max_heartbeat_interval,
                "visibility_timeout": self.drainer.visibility_timeout,
                "max_workers": self.drainer.max_workers,
            },
            "throttler": {
                "groups": list(self.throttler.groups),
                "interval": self.throttler.interval,
                "dry_run": self.throttler.dry_run,
                "scaling_processes": list(self.throttler.scaling_processes),
                "ecs": {
                    "cluster": self.throttler.ecs_cluster,
                    "services": list(self.throttler.ecs_services),
                },
            },
            "cloudwatcher": {
                "interval": self.cloudwatcher.interval,
                "namespace": self.cloudwatcher.namespace,
            },
            "snapshooter": {
                "repository": {
                    "name": self.snapshooter.repository.name,
                    "type": self.snapshooter.repository.type,
                    "settings": dict(self.snapshooter.repository.settings),
                },
                "retention": {
                    "hourly": self.snapshooter.hourly,
                    "daily": self.snapshooter.daily,
                    "weekly": self.snapshooter.weekly,
                    "monthly": self.snapshooter.monthly,
                    "yearly": self.snapshooter.yearly,
                },
                "delete": self.snapshooter.delete,
                "dry_run": self.snapshooter.dry_run,
                "snapshot_timeout": self.snapshooter.snapshot_timeout,
            },
        }
