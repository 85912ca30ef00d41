"""Docker helpers for integration tests."""

from __future__ import annotations

import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

if TYPE_CHECKING:
    from docker.client import DockerClient
    from docker.models.containers import Container
else:
    DockerClient = Any  # type: ignore[misc,assignment]
    Container = Any  # type: ignore[misc,assignment]

POSTGRES_IMAGE = "postgres:16-alpine"
POSTGRES_READY = "database system is ready to accept connections"


def get_docker_client() -> DockerClient:
    """Create a Docker client from environment settings."""
    import docker

    return docker.from_env()


def get_docker_host(client: DockerClient) -> str:
    """Resolve the host to connect to published container ports."""
    base_url = client.api.base_url
    if base_url.startswith(("unix://", "npipe://", "http+docker://")):
        return "localhost"
    return urlparse(base_url).hostname or "localhost"


@dataclass
class DockerService:
    """Handle for a running container and its connection info."""

    container: Container
    host: str

    def port(self, container_port: int, protocol: str = "tcp") -> int:
        """Get the bound host port for a container port."""
        self.container.reload()
        key = f"{container_port}/{protocol}"
        ports = self.container.attrs["NetworkSettings"]["Ports"].get(key)
        if not ports:
            raise RuntimeError(f"Port {key} not exposed on container {self.container.short_id}")
        return int(ports[0]["HostPort"])

    def wait_for_log(self, needle: str, count: int = 1, timeout: float = 60.0) -> None:
        """Block until ``needle`` appears ``count`` times in the container log."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            logs = self.container.logs().decode(errors="replace")
            if logs.count(needle) >= count:
                return
            time.sleep(0.5)
        raise TimeoutError(f"{needle!r} not seen in {self.container.short_id} logs")

    def stop(self) -> None:
        """Stop and remove the container."""
        self.container.remove(force=True, v=True)


@contextmanager
def run_postgres(
    client: DockerClient,
    *,
    user: str = "lodestore",
    password: str = "lodestore",
    database: str = "lodestore",
    ports: Mapping[str, int | None] | None = None,
) -> Iterator[DockerService]:
    """Run a PostgreSQL container and wait until it accepts connections.

    The official image starts the server twice (init, then final), so the
    ready message has to appear twice.
    """
    container = client.containers.run(
        POSTGRES_IMAGE,
        detach=True,
        environment={
            "POSTGRES_USER": user,
            "POSTGRES_PASSWORD": password,
            "POSTGRES_DB": database,
        },
        ports=ports or {"5432/tcp": None},
    )
    service = DockerService(container=container, host=get_docker_host(client))
    try:
        service.wait_for_log(POSTGRES_READY, count=2)
        yield service
    finally:
        service.stop()
