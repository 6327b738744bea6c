"""Disk layout planning: size the main OS partition."""

from linode_coreos.provisioning.types import DiskPlan

# Size of the staging OS disk, which is also the boot disk.
BOOT_DISK_MB = 2048


def plan_disks(total_mb: int, swap_mb: int, extra_mb: int, boot_mb: int = BOOT_DISK_MB) -> DiskPlan:
    """Split *total_mb* into boot, swap, extra and main partitions.

    The main partition gets whatever is left. No bounds checking is done
    here; a non-positive ``main_mb`` must be rejected by the caller before
    any disk is created.
    """
    main_mb = total_mb - boot_mb - swap_mb - extra_mb
    return DiskPlan(
        total_mb=total_mb,
        boot_mb=boot_mb,
        swap_mb=swap_mb,
        extra_mb=extra_mb,
        main_mb=main_mb,
    )
