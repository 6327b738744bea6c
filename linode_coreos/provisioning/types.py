"""Shared data types for node provisioning."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class NodeRequest:
    """Immutable description of the node the operator asked for."""

    name: str
    plan_id: int
    datacenter_id: int
    cloud_config: str
    token: str | None = None
    swap_mb: int = 2048
    extra_mb: int = 0


@dataclass
class NodeHandle:
    """Resources created for a node during one provisioning run."""

    node_id: int
    label: str = ""
    disk_ids: list[int] = field(default_factory=list)
    staging_config_id: int | None = None
    target_config_id: int | None = None

    def describe(self) -> str:
        """One-line summary of every resource created so far."""
        parts = [f"node={self.node_id}"]
        if self.label:
            parts.append(f"label={self.label}")
        if self.disk_ids:
            parts.append(f"disks={','.join(str(d) for d in self.disk_ids)}")
        if self.staging_config_id is not None:
            parts.append(f"staging_config={self.staging_config_id}")
        if self.target_config_id is not None:
            parts.append(f"target_config={self.target_config_id}")
        return " ".join(parts)


@dataclass(frozen=True)
class NetworkInfo:
    public_address: str
    private_address: str
    gateway: str


@dataclass(frozen=True)
class DiskPlan:
    """Partition sizes in MB. main_mb may be negative; callers must check."""

    total_mb: int
    boot_mb: int
    swap_mb: int
    extra_mb: int
    main_mb: int
