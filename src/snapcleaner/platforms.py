"""Snapshot sources for the supported virtualization platforms."""

import subprocess
import json
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, Dict, Any, Optional, Iterable

from .errors import ConfigurationError, ConnectionFailure, DeletionFailure, EnumerationFailure
from .models import Scope, Snapshot
from .utils import NotificationManager, is_command_available


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse an ISO-8601 or epoch-milliseconds timestamp into an aware datetime."""
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return datetime.fromtimestamp(int(value) / 1000.0, tz=timezone.utc)
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class SnapshotSource(ABC):
    """Abstract base class for snapshot platform implementations.

    A source is used as a context manager: the connection is acquired on
    entry and released on every exit path.
    """

    def __init__(self, config, notifier: NotificationManager):
        self.config = config
        self.notifier = notifier
        self.timeout = config.get(f'vm.{self.platform_name}.timeout', 300)
        self.connected = False

    @property
    @abstractmethod
    def platform_name(self) -> str:
        """Return platform name."""

    @property
    @abstractmethod
    def command_name(self) -> str:
        """Return command name for platform."""

    @abstractmethod
    def list_vms(self) -> List[Dict[str, Any]]:
        """List available VMs."""

    @abstractmethod
    def list_vm_snapshots(self, vm_name: str) -> List[Snapshot]:
        """List snapshots of a single VM, raising EnumerationFailure on error."""

    @abstractmethod
    def delete_snapshot(self, snapshot: Snapshot, timeout: Optional[float] = None) -> None:
        """Delete a snapshot, raising on any failure."""

    def is_available(self) -> bool:
        """Check if platform is available."""
        return is_command_available(self.command_name)

    def connect(self) -> None:
        if not self.is_available():
            raise ConnectionFailure(f"{self.platform_name}: command '{self.command_name}' not found")
        self.connected = True
        self.notifier.info(f"Connected to {self.platform_name}")

    def disconnect(self) -> None:
        if self.connected:
            self.connected = False
            self.notifier.info(f"Disconnected from {self.platform_name}")

    def __enter__(self) -> "SnapshotSource":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()

    def list_snapshots(self, scope: Scope) -> List[Snapshot]:
        """List snapshots of every VM in ``scope``."""
        snapshots = []
        for vm_name in scope.vms:
            try:
                snapshots.extend(self.list_vm_snapshots(vm_name))
            except EnumerationFailure as e:
                raise EnumerationFailure(scope.name, f"VM '{vm_name}': {e.message}")
        return snapshots

    def _run_command(self, command: List[str],
                     timeout: Optional[float] = None) -> subprocess.CompletedProcess:
        """Run command with timeout and error handling."""
        try:
            return subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=timeout or self.timeout,
                check=False
            )
        except subprocess.TimeoutExpired:
            self.notifier.error(f"Command timeout: {' '.join(command)}")
            raise
        except OSError as e:
            self.notifier.error(f"Command execution failed: {str(e)}")
            raise


class MultipassSource(SnapshotSource):
    """Multipass snapshot source."""

    @property
    def platform_name(self) -> str:
        return "multipass"

    @property
    def command_name(self) -> str:
        return "multipass"

    def list_vms(self) -> List[Dict[str, Any]]:
        """List Multipass VMs."""
        result = self._run_command(["multipass", "list", "--format", "json"])
        if result.returncode != 0:
            raise EnumerationFailure("inventory", f"Failed to list VMs: {result.stderr.strip()}")
        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise EnumerationFailure("inventory", f"Invalid VM list output: {e}")
        return [
            {
                "name": vm["name"],
                "state": vm.get("state", "unknown"),
                "platform": self.platform_name
            }
            for vm in data.get("list", [])
        ]

    def list_vm_snapshots(self, vm_name: str) -> List[Snapshot]:
        """List Multipass snapshots for a specific VM."""
        try:
            result = self._run_command([
                "multipass", "info", vm_name, "--snapshots", "--format", "json"
            ])
        except (subprocess.TimeoutExpired, OSError) as e:
            raise EnumerationFailure(vm_name, str(e))

        if result.returncode != 0:
            raise EnumerationFailure(vm_name, f"Failed to list snapshots: {result.stderr.strip()}")

        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise EnumerationFailure(vm_name, f"Invalid snapshot output: {e}")

        entries = data.get("info", {}).get(vm_name, {})
        entries = entries.get("snapshots", entries)

        snapshots = []
        for snapshot_name, details in entries.items():
            created = parse_timestamp(str(details.get("created", "")))
            if created is None:
                self.notifier.warning(
                    f"Skipping snapshot '{snapshot_name}' of VM '{vm_name}': unknown creation time"
                )
                continue
            snapshots.append(Snapshot(
                id=f"{vm_name}.{snapshot_name}",
                vm_name=vm_name,
                name=snapshot_name,
                created_at=created,
                size_mb=float(details.get("size_mb", 0) or 0),
                description=details.get("comment", "") or "",
                platform=self.platform_name,
            ))
        return snapshots

    def delete_snapshot(self, snapshot: Snapshot, timeout: Optional[float] = None) -> None:
        """Delete and purge a Multipass snapshot."""
        self.notifier.debug(f"Deleting snapshot '{snapshot.name}' for VM '{snapshot.vm_name}'...")
        result = self._run_command(
            ["multipass", "delete", "--purge", snapshot.id], timeout=timeout
        )
        if result.returncode != 0:
            raise DeletionFailure(snapshot.id, result.stderr.strip() or "multipass delete failed")


class VirtualBoxSource(SnapshotSource):
    """VirtualBox snapshot source."""

    @property
    def platform_name(self) -> str:
        return "virtualbox"

    @property
    def command_name(self) -> str:
        return "vboxmanage"

    def list_vms(self) -> List[Dict[str, Any]]:
        """List VirtualBox VMs."""
        result = self._run_command(["vboxmanage", "list", "vms"])
        if result.returncode != 0:
            raise EnumerationFailure("inventory", f"Failed to list VMs: {result.stderr.strip()}")

        vms = []
        for line in result.stdout.strip().split('\n'):
            line = line.strip()
            if line.startswith('"') and '{' in line:
                name, _, rest = line[1:].partition('"')
                vms.append({
                    "name": name,
                    "uuid": rest.strip().strip('{}'),
                    "platform": self.platform_name
                })
        return vms

    def list_vm_snapshots(self, vm_name: str) -> List[Snapshot]:
        """List VirtualBox snapshots from machine-readable output."""
        try:
            result = self._run_command([
                "vboxmanage", "snapshot", vm_name, "list", "--machinereadable"
            ])
        except (subprocess.TimeoutExpired, OSError) as e:
            raise EnumerationFailure(vm_name, str(e))

        if result.returncode != 0:
            # vboxmanage reports a VM without snapshots as an error
            if "does not have any snapshots" in result.stdout + result.stderr:
                return []
            raise EnumerationFailure(vm_name, f"Failed to list snapshots: {result.stderr.strip()}")

        return self._parse_machinereadable(vm_name, result.stdout.split('\n'))

    def _parse_machinereadable(self, vm_name: str, lines: Iterable[str]) -> List[Snapshot]:
        # Keys look like SnapshotName-1-2="..."; the suffix identifies the node.
        nodes: Dict[str, Dict[str, str]] = {}
        for line in lines:
            key, sep, value = line.strip().partition('=')
            if not sep or not key.startswith('Snapshot'):
                continue
            field_name, _, suffix = key.partition('-')
            nodes.setdefault(suffix, {})[field_name] = value.strip().strip('"')

        snapshots = []
        for node in nodes.values():
            name = node.get("SnapshotName")
            uuid = node.get("SnapshotUUID")
            if not name or not uuid:
                continue
            created = parse_timestamp(node.get("SnapshotTimeStamp", ""))
            if created is None:
                self.notifier.warning(
                    f"Skipping snapshot '{name}' of VM '{vm_name}': unknown creation time"
                )
                continue
            snapshots.append(Snapshot(
                id=uuid,
                vm_name=vm_name,
                name=name,
                created_at=created,
                description=node.get("SnapshotDescription", ""),
                platform=self.platform_name,
            ))
        return snapshots

    def delete_snapshot(self, snapshot: Snapshot, timeout: Optional[float] = None) -> None:
        """Delete VirtualBox snapshot."""
        self.notifier.debug(f"Deleting snapshot '{snapshot.name}' from VM '{snapshot.vm_name}'...")
        result = self._run_command(
            ["vboxmanage", "snapshot", snapshot.vm_name, "delete", snapshot.id], timeout=timeout
        )
        if result.returncode != 0:
            raise DeletionFailure(snapshot.id, result.stderr.strip() or "vboxmanage delete failed")


PLATFORMS = {
    "multipass": MultipassSource,
    "virtualbox": VirtualBoxSource,
}


def create_source(platform: str, config, notifier: NotificationManager) -> SnapshotSource:
    """Create the snapshot source for ``platform``."""
    if platform not in PLATFORMS:
        raise ConfigurationError(
            f"Unsupported platform '{platform}' (choose from {', '.join(sorted(PLATFORMS))})"
        )
    return PLATFORMS[platform](config, notifier)


def resolve_scopes(source: SnapshotSource, configured: List[Scope],
                   vm_names: Optional[List[str]] = None,
                   scope_names: Optional[List[str]] = None) -> List[Scope]:
    """Resolve the scopes to process.

    Explicit ``vm_names`` form a single ad-hoc scope. Otherwise configured
    scopes are used, optionally filtered by ``scope_names``; with no
    configured scopes every VM of the platform forms the ``all`` scope.
    """
    if vm_names:
        return [Scope(name="cli", vms=list(vm_names))]

    if configured:
        if not scope_names:
            return list(configured)
        known = {scope.name: scope for scope in configured}
        missing = [name for name in scope_names if name not in known]
        if missing:
            raise ConfigurationError(f"Unknown scope(s): {', '.join(missing)}")
        return [known[name] for name in scope_names]

    if scope_names:
        raise ConfigurationError("No scopes are configured")
    return [Scope(name="all", vms=[vm["name"] for vm in source.list_vms()])]
